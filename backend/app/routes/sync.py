import logging
from typing import Any, Optional
from uuid import uuid4

from fastapi import APIRouter, Body, Depends, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PayloadError
from sqlalchemy.orm import Session

from app.core.auth import CurrentUser, require_sync_api_key
from app.core.errors import (
    AssetLifecycleError,
    AssetNotFound,
    DuplicateAssetCode,
    InvalidDateRange,
    StaleAssetVersion,
    StoreFailure,
    ValidationError,
)
from app.core.timezone import now_business, today_business
from app.database.deps import get_db
from app.routes.assets import build_asset_out
from app.schemas.sync import (
    SyncAssetPayload,
    SyncBulkFailedItem,
    SyncBulkResults,
    SyncBulkSkippedItem,
    SyncBulkSuccessItem,
)
from app.services.asset_codes import try_normalize_pat_code
from app.services.asset_lifecycle import (
    DEPOSIT,
    DESCRIPTIVE_FIELDS,
    INSPECTION,
    LOCATION_TYPES,
    REQUIRED_DESCRIPTIVE_FIELDS,
    START_DATE_FIELDS,
    clean_location_values,
    commit_changes,
    find_asset_by_code,
    move_asset,
    register_asset,
    retroactive_warnings,
    send_to_inspection,
    update_asset_details,
)

logger = logging.getLogger("uvicorn.error")
router = APIRouter(prefix="/sync-assets", tags=["Sync"])

BULK_MAX_ITEMS = 100
BULK_MODES = {"upsert", "insert_only", "update_only"}
AVAILABLE_ENDPOINTS = {
    "create": "POST /create - Criar novo equipamento",
    "update": "PUT /update/{asset_code} - Atualizar equipamento existente",
    "move": "PATCH /move/{asset_code} - Movimentar equipamento entre localizações",
    "bulk": "POST /bulk - Criar/atualizar múltiplos equipamentos (max 100)",
}
ERROR_STATUS = (
    (AssetNotFound, status.HTTP_404_NOT_FOUND),
    (DuplicateAssetCode, status.HTTP_409_CONFLICT),
    (StaleAssetVersion, status.HTTP_409_CONFLICT),
    (StoreFailure, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def new_sync_id() -> str:
    return str(uuid4())


def sync_response(status_code: int, sync_id: str, **body: Any) -> JSONResponse:
    content = {**body, "sync_id": sync_id, "timestamp": now_business().isoformat()}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def sync_error(db: Session, exc: AssetLifecycleError, sync_id: str) -> JSONResponse:
    db.rollback()
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, mapped in ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = mapped
            break
    logger.info("sync-assets %s rejeitado (%s): %s", sync_id, status_code, exc.user_message)

    if isinstance(exc, (ValidationError, InvalidDateRange)):
        return sync_response(status_code, sync_id, success=False, errors=[exc.user_message])
    if isinstance(exc, DuplicateAssetCode):
        return sync_response(
            status_code,
            sync_id,
            success=False,
            error=f"PAT {exc.duplicate_code} já existe no sistema",
            existing_asset={"id": exc.existing_id, "asset_code": exc.duplicate_code},
        )
    return sync_response(status_code, sync_id, success=False, error=exc.user_message)


def parse_payload(body: Any) -> tuple[Optional[SyncAssetPayload], list[str]]:
    if not isinstance(body, dict):
        return None, ["Corpo da requisição deve ser um objeto JSON"]
    try:
        return SyncAssetPayload.model_validate(body), []
    except PayloadError as exc:
        errors = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        ]
        return None, errors


def _not_found(asset_code: str, sync_id: str) -> JSONResponse:
    code = try_normalize_pat_code(asset_code) or asset_code
    return sync_response(
        status.HTTP_404_NOT_FOUND,
        sync_id,
        success=False,
        error=f"Equipamento {code} não encontrado",
    )


@router.post("/create")
def create_asset_sync(
    body: Any = Body(default=None),
    db: Session = Depends(get_db),
    sync_user: CurrentUser = Depends(require_sync_api_key),
):
    sync_id = new_sync_id()
    logger.info("sync-assets create (%s)", sync_id)
    payload, errors = parse_payload(body)
    if errors:
        return sync_response(status.HTTP_400_BAD_REQUEST, sync_id, success=False, errors=errors)

    data = payload.model_dump(exclude_unset=True)
    location_type = data.get("location_type") or DEPOSIT
    if location_type not in LOCATION_TYPES:
        return sync_response(
            status.HTTP_400_BAD_REQUEST,
            sync_id,
            success=False,
            errors=[f"location_type inválido: {location_type}"],
        )

    today = today_business()
    start_field = START_DATE_FIELDS.get(location_type)
    start_date = data.get(start_field) if start_field else None
    # Equipamento criado ja em operacao entra no sistema na data de inicio informada.
    if start_date and start_date <= today and not data.get("effective_registration_date"):
        data["effective_registration_date"] = start_date

    warnings: list[str] = []
    try:
        asset = register_asset(db, data, user=sync_user, source="sync", today=today, commit=False)
        if location_type == INSPECTION:
            send_to_inspection(db, asset.id, user=sync_user, notes=data.get("notes"), today=today, commit=False)
        elif location_type != DEPOSIT:
            move_asset(db, asset.id, location_type, data, user=sync_user, today=today, commit=False)
            warnings = retroactive_warnings(location_type, clean_location_values(location_type, data), today=today)
        commit_changes(db, asset)
    except AssetLifecycleError as exc:
        return sync_error(db, exc, sync_id)

    return sync_response(
        status.HTTP_201_CREATED,
        sync_id,
        success=True,
        data=build_asset_out(asset),
        warnings=warnings,
    )


@router.put("/update/{asset_code}")
def update_asset_sync(
    asset_code: str,
    body: Any = Body(default=None),
    db: Session = Depends(get_db),
    sync_user: CurrentUser = Depends(require_sync_api_key),
):
    sync_id = new_sync_id()
    logger.info("sync-assets update %s (%s)", asset_code, sync_id)
    payload, errors = parse_payload(body)
    if errors:
        return sync_response(status.HTTP_400_BAD_REQUEST, sync_id, success=False, errors=errors)

    asset = find_asset_by_code(db, asset_code)
    if not asset:
        return _not_found(asset_code, sync_id)

    data = payload.model_dump(exclude_unset=True)
    changes = {field: data[field] for field in DESCRIPTIVE_FIELDS if field in data}
    try:
        asset, changed_fields = update_asset_details(
            db,
            asset.id,
            changes,
            user=sync_user,
            source="sync",
            expected_version=payload.expected_version,
        )
    except AssetLifecycleError as exc:
        return sync_error(db, exc, sync_id)

    if not changed_fields:
        return sync_response(
            status.HTTP_200_OK,
            sync_id,
            success=True,
            data=build_asset_out(asset),
            message="Nenhuma alteração detectada",
        )
    return sync_response(
        status.HTTP_200_OK,
        sync_id,
        success=True,
        data=build_asset_out(asset),
        changed_fields=changed_fields,
    )


@router.patch("/move/{asset_code}")
def move_asset_sync(
    asset_code: str,
    body: Any = Body(default=None),
    db: Session = Depends(get_db),
    sync_user: CurrentUser = Depends(require_sync_api_key),
):
    sync_id = new_sync_id()
    logger.info("sync-assets move %s (%s)", asset_code, sync_id)
    payload, errors = parse_payload(body)
    if errors:
        return sync_response(status.HTTP_400_BAD_REQUEST, sync_id, success=False, errors=errors)

    asset = find_asset_by_code(db, asset_code)
    if not asset:
        return _not_found(asset_code, sync_id)

    location_type = payload.location_type
    if not location_type:
        return sync_response(
            status.HTTP_400_BAD_REQUEST,
            sync_id,
            success=False,
            error="location_type é obrigatório para movimentação",
        )

    data = payload.model_dump(exclude_unset=True)
    previous_location = asset.location_type
    today = today_business()
    warnings: list[str] = []
    try:
        if location_type == INSPECTION:
            asset = send_to_inspection(
                db,
                asset.id,
                user=sync_user,
                expected_version=payload.expected_version,
                notes=payload.notes,
                today=today,
            )
        else:
            asset = move_asset(
                db,
                asset.id,
                location_type,
                data,
                user=sync_user,
                expected_version=payload.expected_version,
                today=today,
            )
            warnings = retroactive_warnings(location_type, clean_location_values(location_type, data), today=today)
    except AssetLifecycleError as exc:
        return sync_error(db, exc, sync_id)

    return sync_response(
        status.HTTP_200_OK,
        sync_id,
        success=True,
        data=build_asset_out(asset),
        previous_location=previous_location,
        new_location=location_type,
        warnings=warnings,
    )


def _bulk_changes(item: dict) -> dict:
    changes = {}
    for field in DESCRIPTIVE_FIELDS:
        if field not in item:
            continue
        if field in REQUIRED_DESCRIPTIVE_FIELDS and not item[field]:
            continue
        changes[field] = item[field]
    return changes


@router.post("/bulk")
def bulk_sync(
    body: Any = Body(default=None),
    db: Session = Depends(get_db),
    sync_user: CurrentUser = Depends(require_sync_api_key),
):
    sync_id = new_sync_id()
    items = body.get("assets") if isinstance(body, dict) else None
    if not isinstance(items, list):
        return sync_response(
            status.HTTP_400_BAD_REQUEST, sync_id, success=False, error='Campo "assets" deve ser um array'
        )
    if not items:
        return sync_response(
            status.HTTP_400_BAD_REQUEST, sync_id, success=False, error='Array "assets" não pode estar vazio'
        )
    if len(items) > BULK_MAX_ITEMS:
        return sync_response(
            status.HTTP_400_BAD_REQUEST,
            sync_id,
            success=False,
            error=f"Máximo de {BULK_MAX_ITEMS} equipamentos por requisição",
        )
    mode = body.get("mode") or "upsert"
    if mode not in BULK_MODES:
        return sync_response(
            status.HTTP_400_BAD_REQUEST,
            sync_id,
            success=False,
            error=f"Modo inválido: {mode}. Use upsert, insert_only ou update_only",
        )

    results = SyncBulkResults()
    for item in items:
        raw_code = item.get("asset_code") if isinstance(item, dict) else None
        code = try_normalize_pat_code(raw_code)
        if not code:
            results.failed.append(
                SyncBulkFailedItem(asset_code=None if raw_code is None else str(raw_code), error="PAT inválido")
            )
            continue

        existing = find_asset_by_code(db, code)
        if mode == "insert_only" and existing:
            results.skipped.append(SyncBulkSkippedItem(asset_code=code, reason="Já existe (modo insert_only)"))
            continue
        if mode == "update_only" and not existing:
            results.skipped.append(SyncBulkSkippedItem(asset_code=code, reason="Não existe (modo update_only)"))
            continue

        try:
            if not existing:
                data = {**_bulk_changes(item), "asset_code": code}
                data.setdefault("equipment_name", "N/A")
                data.setdefault("manufacturer", "N/A")
                register_asset(db, data, user=sync_user, source="sync")
                results.success.append(SyncBulkSuccessItem(asset_code=code, action="created"))
                continue

            _, changed_fields = update_asset_details(
                db,
                existing.id,
                _bulk_changes(item),
                user=sync_user,
                source="sync",
            )
        except AssetLifecycleError as exc:
            db.rollback()
            results.failed.append(SyncBulkFailedItem(asset_code=code, error=exc.message))
            continue

        if changed_fields:
            results.success.append(SyncBulkSuccessItem(asset_code=code, action="updated"))
        else:
            results.skipped.append(SyncBulkSkippedItem(asset_code=code, reason="Sem alterações"))

    summary = {
        "total": len(items),
        "success": len(results.success),
        "failed": len(results.failed),
        "skipped": len(results.skipped),
    }
    logger.info("sync-assets bulk (%s) concluido: %s", sync_id, summary)
    return sync_response(
        status.HTTP_200_OK,
        sync_id,
        success=True,
        results=results,
        summary=summary,
    )


@router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
def sync_endpoint_not_found(
    path: str,
    sync_user: CurrentUser = Depends(require_sync_api_key),
):
    return sync_response(
        status.HTTP_404_NOT_FOUND,
        new_sync_id(),
        success=False,
        error="Endpoint not found",
        available_endpoints=AVAILABLE_ENDPOINTS,
        authentication="Include header: x-api-key: <SYNC_API_KEY>",
    )
