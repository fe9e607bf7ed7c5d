from io import BytesIO
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.core.auth import CurrentUser, get_current_user
from app.core.errors import AssetLifecycleError
from app.core.timezone import now_business
from app.database.deps import get_db
from app.models.asset import Asset
from app.schemas.asset import (
    AssetCreate,
    AssetHistoryEventOut,
    AssetLifecycleCycleOut,
    AssetMoveRequest,
    AssetOut,
    AssetUpdate,
    DepositFields,
    InspectionDecisionRequest,
    InspectionFields,
    InspectionRequest,
    LocationType,
    MaintenanceFields,
    RentalFields,
    SubstitutionOut,
    SubstitutionRequest,
)
from app.services.asset_history import list_asset_history
from app.services.asset_history_pdf import build_asset_history_pdf
from app.services.asset_lifecycle import (
    DEPOSIT,
    INSPECTION,
    MAINTENANCE,
    RENTAL,
    get_asset_by_code,
    list_assets,
    list_lifecycle_cycles,
    location_snapshot,
    move_asset,
    preserved_location_type,
    register_asset,
    resolve_inspection,
    send_to_inspection,
    substitute_asset,
    update_asset_details,
)

router = APIRouter(prefix="/assets", tags=["Assets"])

LOCATION_MODELS = {
    DEPOSIT: DepositFields,
    RENTAL: RentalFields,
    MAINTENANCE: MaintenanceFields,
}


def http_error(exc: AssetLifecycleError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.user_message)


def build_location_details(asset: Asset):
    if asset.location_type == INSPECTION:
        preserved = preserved_location_type(asset)
        snapshot = location_snapshot(asset, preserved)
        previous = LOCATION_MODELS[preserved](**snapshot) if any(snapshot.values()) else None
        return InspectionFields(
            inspection_start_date=asset.inspection_start_date,
            previous_location=previous,
        )
    model = LOCATION_MODELS.get(asset.location_type, DepositFields)
    return model(**location_snapshot(asset, asset.location_type))


def build_asset_out(asset: Asset) -> AssetOut:
    return AssetOut(
        id=asset.id,
        asset_code=asset.asset_code,
        equipment_name=asset.equipment_name,
        manufacturer=asset.manufacturer,
        model=asset.model,
        serial_number=asset.serial_number,
        voltage_combustion=asset.voltage_combustion,
        supplier=asset.supplier,
        purchase_date=asset.purchase_date,
        unit_value=asset.unit_value,
        equipment_condition=asset.equipment_condition,
        comments=asset.comments,
        effective_registration_date=asset.effective_registration_date,
        location_type=asset.location_type,
        location=build_location_details(asset),
        was_replaced=bool(asset.was_replaced),
        replaced_by_asset_id=asset.replaced_by_asset_id,
        replacement_reason=asset.replacement_reason,
        substitution_date=asset.substitution_date,
        available_for_rental=bool(asset.available_for_rental),
        next_maintenance_hourmeter=asset.next_maintenance_hourmeter,
        maintenance_status=asset.maintenance_status,
        retroactive_justification=asset.retroactive_justification,
        version=int(asset.version or 1),
        created_at=asset.created_at,
        updated_at=asset.updated_at,
    )


def _load(db: Session, asset_code: str) -> Asset:
    try:
        return get_asset_by_code(db, asset_code)
    except AssetLifecycleError as exc:
        raise http_error(exc) from exc


@router.get("/", response_model=list[AssetOut])
def list_assets_route(
    location_type: Optional[LocationType] = Query(default=None),
    q: Optional[str] = Query(default=None, max_length=120),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    rows = list_assets(db, location_type=location_type, q=q, limit=limit, offset=offset)
    return [build_asset_out(row) for row in rows]


@router.get("/{asset_code}", response_model=AssetOut)
def get_asset_route(
    asset_code: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return build_asset_out(_load(db, asset_code))


@router.post("/", response_model=AssetOut, status_code=status.HTTP_201_CREATED)
def register_asset_route(
    payload: AssetCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        asset = register_asset(db, payload, user=current_user)
    except AssetLifecycleError as exc:
        raise http_error(exc) from exc
    return build_asset_out(asset)


@router.put("/{asset_code}", response_model=AssetOut)
def update_asset_route(
    asset_code: str,
    payload: AssetUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    asset = _load(db, asset_code)
    changes = payload.model_dump(exclude_unset=True, exclude={"expected_version"})
    try:
        asset, _ = update_asset_details(
            db,
            asset.id,
            changes,
            user=current_user,
            expected_version=payload.expected_version,
        )
    except AssetLifecycleError as exc:
        raise http_error(exc) from exc
    return build_asset_out(asset)


@router.post("/{asset_code}/move", response_model=AssetOut)
def move_asset_route(
    asset_code: str,
    payload: AssetMoveRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    asset = _load(db, asset_code)
    fields = payload.model_dump(exclude={"location_type", "expected_version"})
    try:
        asset = move_asset(
            db,
            asset.id,
            payload.location_type,
            fields,
            user=current_user,
            expected_version=payload.expected_version,
        )
    except AssetLifecycleError as exc:
        raise http_error(exc) from exc
    return build_asset_out(asset)


@router.post("/{asset_code}/inspection", response_model=AssetOut)
def send_to_inspection_route(
    asset_code: str,
    payload: Optional[InspectionRequest] = None,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    payload = payload or InspectionRequest()
    asset = _load(db, asset_code)
    try:
        asset = send_to_inspection(
            db,
            asset.id,
            user=current_user,
            expected_version=payload.expected_version,
            notes=payload.notes,
        )
    except AssetLifecycleError as exc:
        raise http_error(exc) from exc
    return build_asset_out(asset)


@router.post("/{asset_code}/inspection/decision", response_model=AssetOut)
def resolve_inspection_route(
    asset_code: str,
    payload: InspectionDecisionRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    asset = _load(db, asset_code)
    fields = payload.model_dump(exclude={"decision", "expected_version"})
    try:
        asset = resolve_inspection(
            db,
            asset.id,
            payload.decision,
            fields,
            user=current_user,
            expected_version=payload.expected_version,
        )
    except AssetLifecycleError as exc:
        raise http_error(exc) from exc
    return build_asset_out(asset)


@router.post("/{asset_code}/substitution", response_model=SubstitutionOut)
def substitute_asset_route(
    asset_code: str,
    payload: SubstitutionRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    asset = _load(db, asset_code)
    try:
        old, new = substitute_asset(
            db,
            asset.id,
            payload.new_asset_code,
            payload.reason,
            payload.notes,
            user=current_user,
            expected_version=payload.expected_version,
        )
    except AssetLifecycleError as exc:
        raise http_error(exc) from exc
    return SubstitutionOut(old=build_asset_out(old), new=build_asset_out(new))


@router.get("/{asset_code}/history", response_model=list[AssetHistoryEventOut])
def asset_history_route(
    asset_code: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    asset = _load(db, asset_code)
    return list_asset_history(db, asset.id)


@router.get("/{asset_code}/lifecycles", response_model=list[AssetLifecycleCycleOut])
def asset_lifecycles_route(
    asset_code: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    asset = _load(db, asset_code)
    return list_lifecycle_cycles(db, asset.id)


@router.get("/{asset_code}/history/pdf")
def asset_history_pdf_route(
    asset_code: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    asset = _load(db, asset_code)
    pdf_bytes = build_asset_history_pdf(
        asset,
        list_asset_history(db, asset.id),
        list_lifecycle_cycles(db, asset.id),
    )
    filename = f"historico_pat_{asset.asset_code}_{now_business().strftime('%Y%m%d_%H%M')}.pdf"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return StreamingResponse(BytesIO(pdf_bytes), media_type="application/pdf", headers=headers)
