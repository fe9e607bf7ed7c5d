from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from app.core.auth import CurrentUser
from app.core.timezone import format_br_date
from app.models.asset import Asset
from app.models.asset_history import AssetHistoryEvent

EVENT_MOVEMENT = "MOVIMENTAÇÃO"
EVENT_POST_INSPECTION = "DECISÃO PÓS-LAUDO"
EVENT_EDIT = "EDIÇÃO"
EVENT_SYNC_CREATE = "SYNC_CREATE"
EVENT_SYNC_UPDATE = "SYNC_UPDATE"

LOCATION_LABELS = {
    "deposito_malta": "Depósito Malta",
    "locacao": "Locação",
    "em_manutencao": "Em Manutenção",
    "aguardando_laudo": "Aguardando Laudo",
}


def location_label(location_type: Optional[str]) -> str:
    return LOCATION_LABELS.get(str(location_type or ""), str(location_type or ""))


def record_history_event(
    db: Session,
    asset: Asset,
    tipo_evento: str,
    detalhes_evento: str,
    *,
    user: Optional[CurrentUser] = None,
    campo_alterado: Optional[str] = None,
    valor_antigo: Optional[str] = None,
    valor_novo: Optional[str] = None,
    data_evento_real: Optional[date] = None,
    today: Optional[date] = None,
) -> AssetHistoryEvent:
    retroactive = bool(data_evento_real and today and data_evento_real < today)
    event = AssetHistoryEvent(
        pat_id=asset.id,
        codigo_pat=asset.asset_code,
        tipo_evento=tipo_evento,
        campo_alterado=campo_alterado,
        valor_antigo=valor_antigo,
        valor_novo=valor_novo,
        detalhes_evento=detalhes_evento,
        data_evento_real=data_evento_real,
        registro_retroativo=retroactive,
        usuario_modificacao=user.id if user else None,
        usuario_nome=user.display_name if user else None,
    )
    db.add(event)
    return event


def describe_movement(
    from_location: str,
    to_location: str,
    values: dict,
    *,
    today: date,
    notes: Optional[str] = None,
) -> str:
    details = (
        f"Movido de {location_label(from_location)} para {location_label(to_location)} "
        f"em {format_br_date(today)}"
    )
    if to_location == "locacao":
        details += f". Empresa: {values.get('rental_company')}, Obra: {values.get('rental_work_site')}"
        if values.get("rental_end_date"):
            details += f", Fim previsto: {format_br_date(values['rental_end_date'])}"
    elif to_location == "em_manutencao":
        details += f". Empresa: {values.get('maintenance_company')}, Local: {values.get('maintenance_work_site')}"
        if values.get("maintenance_description"):
            details += f". Motivo: {values['maintenance_description']}"
    elif to_location == "deposito_malta" and values.get("deposito_description"):
        details += f". {values['deposito_description']}"
    if notes:
        details += f". Obs: {notes}"
    return details


def describe_location(location_type: str, values: dict) -> str:
    label = location_label(location_type)
    if location_type == "locacao":
        return f"{label} ({values.get('rental_company') or 'N/A'} - {values.get('rental_work_site') or 'N/A'})"
    if location_type == "em_manutencao":
        return f"{label} ({values.get('maintenance_company') or 'N/A'} - {values.get('maintenance_work_site') or 'N/A'})"
    return label


def list_asset_history(db: Session, asset_id: int) -> list[AssetHistoryEvent]:
    return (
        db.query(AssetHistoryEvent)
        .filter(AssetHistoryEvent.pat_id == asset_id)
        .order_by(AssetHistoryEvent.data_modificacao.desc(), AssetHistoryEvent.id.desc())
        .all()
    )
