import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.auth import CurrentUser
from app.core.config import RETROACTIVE_JUSTIFICATION_DAYS
from app.core.errors import (
    AssetNotFound,
    DuplicateAssetCode,
    InvalidDateRange,
    InvalidStateTransition,
    StaleAssetVersion,
    StoreFailure,
    SubstituteNotEligible,
    ValidationError,
)
from app.core.timezone import BUSINESS_TZ, days_between, format_br_date, now_business, today_business
from app.models.asset import Asset
from app.models.asset_lifecycle import AssetLifecycleCycle
from app.services.asset_codes import (
    normalize_optional_text,
    normalize_pat_code,
    normalize_spaces,
    normalize_upper_text,
    try_normalize_pat_code,
)
from app.services.asset_history import (
    EVENT_EDIT,
    EVENT_MOVEMENT,
    EVENT_POST_INSPECTION,
    EVENT_SYNC_CREATE,
    EVENT_SYNC_UPDATE,
    describe_location,
    describe_movement,
    location_label,
    record_history_event,
)

logger = logging.getLogger("uvicorn.error")

DEPOSIT = "deposito_malta"
RENTAL = "locacao"
MAINTENANCE = "em_manutencao"
INSPECTION = "aguardando_laudo"
LOCATION_TYPES = (DEPOSIT, RENTAL, MAINTENANCE, INSPECTION)
OPERATING_LOCATIONS = (DEPOSIT, RENTAL, MAINTENANCE)

DECISION_APPROVE = "approve"
DECISION_MAINTENANCE = "maintenance"
DECISION_RETURN = "return"
INSPECTION_DECISIONS = (DECISION_APPROVE, DECISION_MAINTENANCE, DECISION_RETURN)

DEFAULT_DEPOSIT_DESCRIPTION = "Aguardando definição de localização"

LOCATION_FIELD_GROUPS = {
    DEPOSIT: ("deposito_description", "malta_collaborator"),
    RENTAL: (
        "rental_company",
        "rental_work_site",
        "rental_start_date",
        "rental_end_date",
        "rental_contract_number",
    ),
    MAINTENANCE: (
        "maintenance_company",
        "maintenance_work_site",
        "maintenance_arrival_date",
        "maintenance_departure_date",
        "maintenance_description",
        "maintenance_delay_observations",
    ),
    INSPECTION: ("inspection_start_date",),
}
ALL_LOCATION_FIELDS = tuple(field for group in LOCATION_FIELD_GROUPS.values() for field in group)

REQUIRED_FIELDS = {
    DEPOSIT: (),
    RENTAL: ("rental_company", "rental_work_site", "rental_start_date"),
    MAINTENANCE: (
        "maintenance_company",
        "maintenance_work_site",
        "maintenance_arrival_date",
        "maintenance_description",
    ),
}
START_DATE_FIELDS = {RENTAL: "rental_start_date", MAINTENANCE: "maintenance_arrival_date"}
END_DATE_FIELDS = {RENTAL: "rental_end_date", MAINTENANCE: "maintenance_departure_date"}
DATE_FIELDS = {
    "rental_start_date",
    "rental_end_date",
    "maintenance_arrival_date",
    "maintenance_departure_date",
    "inspection_start_date",
}
UPPER_TEXT_FIELDS = {
    "rental_company",
    "rental_work_site",
    "maintenance_company",
    "maintenance_work_site",
}
# Reaproveitados dos dados preservados durante o laudo quando omitidos na decisao.
INSPECTION_AUTOFILL_FIELDS = {
    MAINTENANCE: ("maintenance_company", "maintenance_work_site"),
    RENTAL: ("rental_company", "rental_work_site", "rental_contract_number"),
}

DESCRIPTIVE_FIELDS = (
    "equipment_name",
    "manufacturer",
    "model",
    "serial_number",
    "voltage_combustion",
    "supplier",
    "purchase_date",
    "unit_value",
    "equipment_condition",
    "comments",
)
REQUIRED_DESCRIPTIVE_FIELDS = ("equipment_name", "manufacturer")
UPPER_DESCRIPTIVE_FIELDS = {"equipment_name", "manufacturer", "model"}
EQUIPMENT_CONDITIONS = {"NOVO", "USADO"}


@contextmanager
def _store_errors(db: Session, *, asset_code: Optional[str] = None):
    try:
        yield
    except StaleDataError as exc:
        db.rollback()
        raise StaleAssetVersion(expected=None, current=None, asset_code=asset_code) from exc
    except IntegrityError as exc:
        db.rollback()
        message = str(exc.orig or exc)
        if asset_code and "asset_code" in message:
            raise DuplicateAssetCode(asset_code) from exc
        logger.exception("Falha de integridade ao gravar equipamento %s", asset_code or "-")
        raise StoreFailure(message, asset_code=asset_code) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Falha ao gravar equipamento %s", asset_code or "-")
        raise StoreFailure(str(getattr(exc, "orig", None) or exc), asset_code=asset_code) from exc


def commit_changes(db: Session, *assets: Asset) -> None:
    asset_code = assets[0].asset_code if assets else None
    with _store_errors(db, asset_code=asset_code):
        db.commit()
        for asset in assets:
            db.refresh(asset)


def _parse_date(value, field: str, *, asset_code: Optional[str] = None) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = normalize_spaces(value)
    try:
        return date.fromisoformat(text[:10])
    except ValueError as exc:
        raise ValidationError(
            f"Data invalida em {field}. Use o formato AAAA-MM-DD.",
            fields=[field],
            asset_code=asset_code,
        ) from exc


def _check_version(asset: Asset, expected_version: Optional[int]) -> None:
    if expected_version is None:
        return
    if int(expected_version) != int(asset.version or 0):
        raise StaleAssetVersion(expected=expected_version, current=asset.version, asset_code=asset.asset_code)


def get_asset(db: Session, asset_id: int) -> Asset:
    asset = db.query(Asset).filter(Asset.id == asset_id).first()
    if not asset:
        raise AssetNotFound(asset_id=asset_id)
    return asset


def find_asset_by_code(db: Session, asset_code) -> Optional[Asset]:
    code = try_normalize_pat_code(asset_code)
    if not code:
        return None
    return db.query(Asset).filter(Asset.asset_code == code).first()


def get_asset_by_code(db: Session, asset_code) -> Asset:
    code = normalize_pat_code(asset_code)
    asset = db.query(Asset).filter(Asset.asset_code == code).first()
    if not asset:
        raise AssetNotFound(asset_code=code)
    return asset


def list_assets(
    db: Session,
    *,
    location_type: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Asset]:
    query = db.query(Asset)
    if location_type:
        query = query.filter(Asset.location_type == location_type)
    search = normalize_spaces(q)
    if search:
        pattern = f"%{search.upper()}%"
        query = query.filter(
            or_(
                Asset.asset_code.like(pattern),
                func.upper(Asset.equipment_name).like(pattern),
                func.upper(Asset.manufacturer).like(pattern),
                func.upper(func.coalesce(Asset.rental_company, "")).like(pattern),
                func.upper(func.coalesce(Asset.maintenance_company, "")).like(pattern),
            )
        )
    return query.order_by(Asset.asset_code.asc()).offset(offset).limit(limit).all()


def list_lifecycle_cycles(db: Session, asset_id: int) -> list[AssetLifecycleCycle]:
    return (
        db.query(AssetLifecycleCycle)
        .filter(AssetLifecycleCycle.asset_id == asset_id)
        .order_by(AssetLifecycleCycle.cycle_number.desc())
        .all()
    )


def registration_floor(asset: Asset) -> Optional[date]:
    if asset.effective_registration_date:
        return asset.effective_registration_date
    created_at = asset.created_at
    if isinstance(created_at, datetime):
        # func.now() grava em UTC
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return created_at.astimezone(BUSINESS_TZ).date()
    return None


def _normalize_group_value(field: str, value, *, asset_code: Optional[str] = None):
    if field in DATE_FIELDS:
        return _parse_date(value, field, asset_code=asset_code)
    if field in UPPER_TEXT_FIELDS:
        return normalize_upper_text(value)
    return normalize_optional_text(value)


def clean_location_values(location_type: str, fields: Mapping, *, asset_code: Optional[str] = None) -> dict:
    return {
        field: _normalize_group_value(field, fields.get(field), asset_code=asset_code)
        for field in LOCATION_FIELD_GROUPS[location_type]
    }


def _require_location_fields(location_type: str, values: Mapping, *, asset_code: Optional[str] = None) -> None:
    missing = [field for field in REQUIRED_FIELDS.get(location_type, ()) if not values.get(field)]
    if missing:
        raise ValidationError.missing(missing, asset_code=asset_code)


def validate_location_dates(
    asset: Asset,
    location_type: str,
    values: Mapping,
    *,
    today: date,
    justification: Optional[str] = None,
) -> None:
    start_field = START_DATE_FIELDS.get(location_type)
    end_field = END_DATE_FIELDS.get(location_type)
    if not start_field:
        return
    start = values.get(start_field)
    end = values.get(end_field)
    code = asset.asset_code

    if start:
        floor = registration_floor(asset)
        if floor and start < floor:
            raise InvalidDateRange(
                "Data de movimentacao nao pode ser anterior a entrada do equipamento no sistema "
                f"({format_br_date(floor)}).",
                field=start_field,
                bound="registration_floor",
                asset_code=code,
            )
        if start > today:
            raise InvalidDateRange(
                "Data de movimentacao nao pode ser futura.",
                field=start_field,
                bound="future",
                asset_code=code,
            )
        days_past = days_between(start, today)
        if days_past > RETROACTIVE_JUSTIFICATION_DAYS and not normalize_optional_text(justification):
            raise InvalidDateRange(
                f"Data retroativa de {days_past} dias exige justificativa "
                f"(limite de {RETROACTIVE_JUSTIFICATION_DAYS} dias).",
                field=start_field,
                bound="retroactive_limit",
                asset_code=code,
            )

    if start and end and end < start:
        raise InvalidDateRange(
            f"{end_field} nao pode ser anterior a {start_field}.",
            field=end_field,
            bound="end_before_start",
            asset_code=code,
        )


def retroactive_warnings(location_type: str, values: Mapping, *, today: date) -> list[str]:
    start_field = START_DATE_FIELDS.get(location_type)
    start = values.get(start_field) if start_field else None
    if not start:
        return []
    days_past = days_between(start, today)
    if days_past < 1:
        return []
    return [f"{start_field} esta {days_past} dias no passado"]


def apply_location_group(asset: Asset, location_type: str, values: Mapping) -> None:
    active = set(LOCATION_FIELD_GROUPS[location_type])
    for field in ALL_LOCATION_FIELDS:
        setattr(asset, field, values.get(field) if field in active else None)
    asset.location_type = location_type


def location_snapshot(asset: Asset, location_type: str) -> dict:
    return {field: getattr(asset, field) for field in LOCATION_FIELD_GROUPS[location_type]}


def preserved_location_type(asset: Asset) -> str:
    if asset.location_type != INSPECTION:
        return asset.location_type
    if asset.rental_company or asset.rental_work_site:
        return RENTAL
    if asset.maintenance_company or asset.maintenance_work_site:
        return MAINTENANCE
    return DEPOSIT


def _deposit_values(fields: Mapping) -> dict:
    values = clean_location_values(DEPOSIT, fields)
    if not values.get("deposito_description"):
        values["deposito_description"] = DEFAULT_DEPOSIT_DESCRIPTION
    return values


def _normalize_descriptive(field: str, value, *, asset_code: Optional[str] = None):
    if field == "purchase_date":
        return _parse_date(value, field, asset_code=asset_code)
    if field == "unit_value":
        if value is None or value == "":
            return None
        try:
            amount = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValidationError("Valor unitario invalido.", fields=[field], asset_code=asset_code) from exc
        if amount < 0:
            raise ValidationError("Valor unitario nao pode ser negativo.", fields=[field], asset_code=asset_code)
        return amount
    if field == "equipment_condition":
        condition = normalize_upper_text(value)
        if condition and condition not in EQUIPMENT_CONDITIONS:
            raise ValidationError("Condicao do equipamento deve ser NOVO ou USADO.", fields=[field], asset_code=asset_code)
        return condition
    if field in UPPER_DESCRIPTIVE_FIELDS:
        return normalize_upper_text(value)
    return normalize_optional_text(value)


def register_asset(
    db: Session,
    payload,
    *,
    user: Optional[CurrentUser] = None,
    source: str = "form",
    today: Optional[date] = None,
    commit: bool = True,
) -> Asset:
    data = payload.model_dump() if hasattr(payload, "model_dump") else dict(payload)
    today = today or today_business()
    code = normalize_pat_code(data.get("asset_code"))

    values = {field: _normalize_descriptive(field, data.get(field), asset_code=code) for field in DESCRIPTIVE_FIELDS}
    missing = [field for field in REQUIRED_DESCRIPTIVE_FIELDS if not values.get(field)]
    if missing:
        raise ValidationError.missing(missing, asset_code=code)

    effective_date = _parse_date(data.get("effective_registration_date"), "effective_registration_date", asset_code=code)
    effective_date = effective_date or today
    if effective_date > today:
        raise InvalidDateRange(
            "Data de entrada no sistema nao pode ser futura.",
            field="effective_registration_date",
            bound="future",
            asset_code=code,
        )
    if values["purchase_date"] and values["purchase_date"] > effective_date:
        raise InvalidDateRange(
            "Data de compra nao pode ser posterior a entrada do equipamento no sistema.",
            field="purchase_date",
            bound="purchase_after_registration",
            asset_code=code,
        )

    existing = db.query(Asset.id).filter(Asset.asset_code == code).first()
    if existing:
        raise DuplicateAssetCode(code, existing_id=existing.id)

    asset = Asset(
        asset_code=code,
        effective_registration_date=effective_date,
        was_replaced=False,
        available_for_rental=True,
        **values,
    )
    apply_location_group(asset, DEPOSIT, _deposit_values(data))

    with _store_errors(db, asset_code=code):
        db.add(asset)
        db.flush()

    if source == "sync":
        record_history_event(
            db,
            asset,
            EVENT_SYNC_CREATE,
            f"Equipamento criado via API de sincronização. Localização: {DEPOSIT}",
            user=user,
            data_evento_real=effective_date,
            today=today,
        )

    if commit:
        commit_changes(db, asset)
    logger.info("Equipamento %s cadastrado (%s).", code, source)
    return asset


def update_asset_details(
    db: Session,
    asset_id: int,
    changes: Mapping,
    *,
    user: Optional[CurrentUser] = None,
    source: str = "form",
    expected_version: Optional[int] = None,
    today: Optional[date] = None,
    commit: bool = True,
) -> tuple[Asset, list[str]]:
    today = today or today_business()
    asset = get_asset(db, asset_id)
    _check_version(asset, expected_version)
    code = asset.asset_code

    if "asset_code" in changes and changes.get("asset_code") not in (None, ""):
        if try_normalize_pat_code(changes["asset_code"]) != code:
            raise ValidationError("PAT nao pode ser alterado apos o cadastro.", fields=["asset_code"], asset_code=code)

    staged = {}
    for field in DESCRIPTIVE_FIELDS:
        if field not in changes:
            continue
        value = _normalize_descriptive(field, changes[field], asset_code=code)
        if field in REQUIRED_DESCRIPTIVE_FIELDS and not value:
            raise ValidationError.missing([field], asset_code=code)
        if value != getattr(asset, field):
            staged[field] = value

    purchase_date = staged.get("purchase_date", asset.purchase_date)
    floor = registration_floor(asset)
    if purchase_date and floor and purchase_date > floor:
        raise InvalidDateRange(
            "Data de compra nao pode ser posterior a entrada do equipamento no sistema.",
            field="purchase_date",
            bound="purchase_after_registration",
            asset_code=code,
        )

    if not staged:
        return asset, []

    for field, value in staged.items():
        setattr(asset, field, value)
    changed_fields = list(staged)
    if source == "sync":
        event_type = EVENT_SYNC_UPDATE
        details = f"Equipamento atualizado via API. Campos: {', '.join(changed_fields)}"
    else:
        event_type = EVENT_EDIT
        details = f"Dados cadastrais atualizados. Campos: {', '.join(changed_fields)}"
    record_history_event(db, asset, event_type, details, user=user, today=today)

    if commit:
        commit_changes(db, asset)
    return asset, changed_fields


def move_asset(
    db: Session,
    asset_id: int,
    new_location_type: str,
    fields: Optional[Mapping] = None,
    *,
    user: Optional[CurrentUser] = None,
    expected_version: Optional[int] = None,
    today: Optional[date] = None,
    commit: bool = True,
) -> Asset:
    fields = dict(fields or {})
    today = today or today_business()
    asset = get_asset(db, asset_id)
    _check_version(asset, expected_version)
    code = asset.asset_code
    previous = asset.location_type

    if new_location_type not in LOCATION_TYPES:
        raise ValidationError("Localizacao invalida.", fields=["location_type"], asset_code=code)
    if new_location_type == INSPECTION:
        raise InvalidStateTransition(
            "Envio para Aguardando Laudo deve usar a operacao de laudo.",
            current=previous,
            target=new_location_type,
            asset_code=code,
        )
    if previous == INSPECTION:
        raise InvalidStateTransition(
            "Equipamento aguardando laudo. Registre a decisao pos-laudo para movimenta-lo.",
            current=previous,
            target=new_location_type,
            asset_code=code,
        )

    if new_location_type == DEPOSIT:
        values = _deposit_values(fields)
    else:
        values = clean_location_values(new_location_type, fields, asset_code=code)
        _require_location_fields(new_location_type, values, asset_code=code)
    justification = normalize_optional_text(fields.get("retroactive_justification"))
    validate_location_dates(asset, new_location_type, values, today=today, justification=justification)

    apply_location_group(asset, new_location_type, values)
    if new_location_type == DEPOSIT and fields.get("available_for_rental") is not None:
        asset.available_for_rental = bool(fields["available_for_rental"])
    else:
        asset.available_for_rental = new_location_type == DEPOSIT
    asset.retroactive_justification = justification

    start_field = START_DATE_FIELDS.get(new_location_type)
    record_history_event(
        db,
        asset,
        EVENT_MOVEMENT,
        describe_movement(previous, new_location_type, values, today=today, notes=normalize_optional_text(fields.get("notes"))),
        user=user,
        campo_alterado="location_type",
        valor_antigo=previous,
        valor_novo=new_location_type,
        data_evento_real=values.get(start_field) if start_field else today,
        today=today,
    )

    if commit:
        commit_changes(db, asset)
    logger.info("Equipamento %s movimentado: %s -> %s", code, previous, new_location_type)
    return asset


def send_to_inspection(
    db: Session,
    asset_id: int,
    *,
    user: Optional[CurrentUser] = None,
    expected_version: Optional[int] = None,
    notes: Optional[str] = None,
    today: Optional[date] = None,
    commit: bool = True,
) -> Asset:
    today = today or today_business()
    asset = get_asset(db, asset_id)
    _check_version(asset, expected_version)
    previous = asset.location_type
    if previous == INSPECTION:
        raise InvalidStateTransition(
            "Equipamento ja esta aguardando laudo.",
            current=previous,
            target=INSPECTION,
            asset_code=asset.asset_code,
        )

    # Campos da localizacao anterior ficam preservados para a decisao pos-laudo.
    asset.location_type = INSPECTION
    asset.inspection_start_date = today
    asset.available_for_rental = False

    record_history_event(
        db,
        asset,
        EVENT_MOVEMENT,
        describe_movement(previous, INSPECTION, {}, today=today, notes=normalize_optional_text(notes)),
        user=user,
        campo_alterado="location_type",
        valor_antigo=previous,
        valor_novo=INSPECTION,
        data_evento_real=today,
        today=today,
    )

    if commit:
        commit_changes(db, asset)
    return asset


def _next_cycle_number(db: Session, asset_id: int) -> int:
    current = (
        db.query(func.max(AssetLifecycleCycle.cycle_number))
        .filter(AssetLifecycleCycle.asset_id == asset_id)
        .scalar()
    )
    return int(current or 0) + 1


def archive_open_cycles(
    db: Session,
    asset: Asset,
    *,
    user: Optional[CurrentUser] = None,
    today: Optional[date] = None,
) -> list[AssetLifecycleCycle]:
    today = today or today_business()
    closed_at = now_business()
    closed_on = asset.inspection_start_date or today
    next_number = _next_cycle_number(db, asset.id)
    cycles: list[AssetLifecycleCycle] = []

    if asset.rental_company or asset.rental_work_site:
        cycles.append(
            AssetLifecycleCycle(
                asset_id=asset.id,
                asset_code=asset.asset_code,
                cycle_number=next_number,
                cycle_kind="locacao",
                company=asset.rental_company,
                work_site=asset.rental_work_site,
                cycle_started_at=asset.rental_start_date,
                cycle_ended_at=closed_on,
                duration_days=days_between(asset.rental_start_date, closed_on) if asset.rental_start_date else None,
                cycle_closed_at=closed_at,
                closed_by=user.id if user else None,
                reason=(
                    "Ciclo de locação encerrado. "
                    f"Cliente: {asset.rental_company or 'N/A'}, "
                    f"Obra: {asset.rental_work_site or 'N/A'}, "
                    f"Contrato: {asset.rental_contract_number or 'N/A'}"
                ),
                archived_withdrawals_count=0,
            )
        )
        next_number += 1

    if asset.maintenance_company or asset.maintenance_work_site:
        arrival = asset.maintenance_arrival_date
        departure = asset.maintenance_departure_date
        duration = days_between(arrival, departure) if arrival and departure else 0
        cycles.append(
            AssetLifecycleCycle(
                asset_id=asset.id,
                asset_code=asset.asset_code,
                cycle_number=next_number,
                cycle_kind="manutencao",
                company=asset.maintenance_company,
                work_site=asset.maintenance_work_site,
                cycle_started_at=arrival,
                cycle_ended_at=departure or closed_on,
                duration_days=duration,
                cycle_closed_at=closed_at,
                closed_by=user.id if user else None,
                reason=(
                    f"Ciclo de manutenção encerrado ({duration} dias). "
                    f"{asset.maintenance_company or 'N/A'} - {asset.maintenance_work_site or 'N/A'}. "
                    f"{asset.maintenance_description or ''}"
                ).strip(),
                archived_withdrawals_count=0,
            )
        )

    for cycle in cycles:
        db.add(cycle)
    return cycles


def _with_preserved(asset: Asset, location_type: str, fields: Mapping) -> dict:
    merged = dict(fields)
    for field in INSPECTION_AUTOFILL_FIELDS.get(location_type, ()):
        if not normalize_spaces(merged.get(field)):
            merged[field] = getattr(asset, field)
    return merged


def resolve_inspection(
    db: Session,
    asset_id: int,
    decision: str,
    fields: Optional[Mapping] = None,
    *,
    user: Optional[CurrentUser] = None,
    expected_version: Optional[int] = None,
    today: Optional[date] = None,
    commit: bool = True,
) -> Asset:
    fields = dict(fields or {})
    today = today or today_business()
    asset = get_asset(db, asset_id)
    _check_version(asset, expected_version)
    code = asset.asset_code

    if asset.location_type != INSPECTION:
        raise InvalidStateTransition(
            "Este equipamento nao esta aguardando laudo.",
            current=asset.location_type,
            asset_code=code,
        )
    if decision not in INSPECTION_DECISIONS:
        raise ValidationError("Decisao pos-laudo invalida.", fields=["decision"], asset_code=code)

    notes = normalize_optional_text(fields.get("decision_notes") or fields.get("notes"))
    justification = normalize_optional_text(fields.get("retroactive_justification"))
    data_evento_real = today

    if decision == DECISION_APPROVE:
        cycles = archive_open_cycles(db, asset, user=user, today=today)
        target = DEPOSIT
        apply_location_group(asset, DEPOSIT, _deposit_values(fields))
        asset.available_for_rental = True
        details = "Equipamento aprovado e disponibilizado para locação"
        if cycles:
            details += f". Ciclos arquivados: {len(cycles)}"
    else:
        target = MAINTENANCE if decision == DECISION_MAINTENANCE else RENTAL
        values = clean_location_values(target, _with_preserved(asset, target, fields), asset_code=code)
        _require_location_fields(target, values, asset_code=code)
        validate_location_dates(asset, target, values, today=today, justification=justification)
        apply_location_group(asset, target, values)
        asset.available_for_rental = False
        data_evento_real = values.get(START_DATE_FIELDS[target])
        if target == MAINTENANCE:
            details = f"Enviado para manutenção em {values['maintenance_company']} - {values['maintenance_work_site']}"
        else:
            details = f"Retornado para obra {values['rental_work_site']} - {values['rental_company']}"
    asset.retroactive_justification = justification
    if notes:
        details += f". Observação: {notes}"

    record_history_event(
        db,
        asset,
        EVENT_POST_INSPECTION,
        details,
        user=user,
        campo_alterado="location_type",
        valor_antigo=INSPECTION,
        valor_novo=target,
        data_evento_real=data_evento_real,
        today=today,
    )

    if commit:
        commit_changes(db, asset)
    logger.info("Decisao pos-laudo registrada para %s: %s", code, decision)
    return asset


def substitute_asset(
    db: Session,
    old_asset_id: int,
    new_asset_code,
    reason: Optional[str],
    notes: Optional[str] = None,
    *,
    user: Optional[CurrentUser] = None,
    expected_version: Optional[int] = None,
    today: Optional[date] = None,
    commit: bool = True,
) -> tuple[Asset, Asset]:
    today = today or today_business()
    old = get_asset(db, old_asset_id)
    _check_version(old, expected_version)
    old_code = old.asset_code

    reason_text = normalize_optional_text(reason)
    if not reason_text:
        raise ValidationError.missing(["replacement_reason"], asset_code=old_code)
    if old.location_type == INSPECTION and old.was_replaced:
        raise InvalidStateTransition(
            "Equipamento ja foi substituido e aguarda laudo.",
            current=old.location_type,
            asset_code=old_code,
        )

    new_code = try_normalize_pat_code(new_asset_code)
    new = db.query(Asset).filter(Asset.asset_code == new_code).first() if new_code else None
    if not new:
        raise SubstituteNotEligible(
            f"Equipamento {new_code or normalize_spaces(new_asset_code)} nao encontrado.",
            reason=SubstituteNotEligible.NOT_FOUND,
            asset_code=old_code,
        )
    if new.id == old.id:
        raise SubstituteNotEligible(
            "O equipamento substituto deve ser diferente do equipamento substituido.",
            reason=SubstituteNotEligible.SAME_ASSET,
            asset_code=old_code,
        )
    if new.location_type != DEPOSIT:
        raise SubstituteNotEligible(
            f'Equipamento {new.asset_code} esta em "{location_label(new.location_type)}". '
            "Deve estar no Depósito Malta.",
            reason=SubstituteNotEligible.WRONG_LOCATION,
            asset_code=old_code,
        )

    inherited_location = preserved_location_type(old)
    inherited = location_snapshot(old, inherited_location)
    start_field = START_DATE_FIELDS.get(inherited_location)
    if start_field:
        inherited[start_field] = today
    if inherited_location == DEPOSIT and not inherited.get("deposito_description"):
        inherited["deposito_description"] = DEFAULT_DEPOSIT_DESCRIPTION
    old_previous = old.location_type
    notes_text = normalize_optional_text(notes)
    position = describe_location(inherited_location, inherited)

    # Equipamento antigo: campos de localizacao preservados para auditoria.
    old.location_type = INSPECTION
    old.inspection_start_date = today
    old.was_replaced = True
    old.replaced_by_asset_id = new.id
    old.replacement_reason = reason_text
    old.substitution_date = today
    old.available_for_rental = False

    apply_location_group(new, inherited_location, inherited)
    new.available_for_rental = True
    new.retroactive_justification = None

    old_details = (
        f"Substituído pelo PAT {new.asset_code} em {format_br_date(today)}. "
        f"Posição herdada pelo substituto: {position}. "
        f"Equipamento movido para {location_label(INSPECTION)}. Motivo: {reason_text}"
    )
    new_details = (
        f"Substituiu PAT {old_code} em {format_br_date(today)}. "
        f"Herdou posição: {position}. Motivo: {reason_text}"
    )
    if notes_text:
        old_details += f". Obs: {notes_text}"
        new_details += f". Obs: {notes_text}"

    record_history_event(
        db,
        old,
        EVENT_MOVEMENT,
        old_details,
        user=user,
        campo_alterado="location_type",
        valor_antigo=old_previous,
        valor_novo=INSPECTION,
        data_evento_real=today,
        today=today,
    )
    record_history_event(
        db,
        new,
        EVENT_MOVEMENT,
        new_details,
        user=user,
        campo_alterado="location_type",
        valor_antigo=DEPOSIT,
        valor_novo=inherited_location,
        data_evento_real=today,
        today=today,
    )

    if commit:
        commit_changes(db, old, new)
    logger.info("Equipamento %s substituido por %s", old_code, new.asset_code)
    return old, new
