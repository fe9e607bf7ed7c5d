from datetime import date, datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import (
    DuplicateAssetCode,
    InvalidDateRange,
    InvalidStateTransition,
    StaleAssetVersion,
    StoreFailure,
    ValidationError,
)
from app.models.asset import Asset
from app.models.asset_lifecycle import AssetLifecycleCycle
from app.services.asset_lifecycle import (
    ALL_LOCATION_FIELDS,
    LOCATION_FIELD_GROUPS,
    _store_errors,
    move_asset,
    register_asset,
    registration_floor,
    resolve_inspection,
    retroactive_warnings,
    send_to_inspection,
    update_asset_details,
)

TODAY = date(2025, 1, 15)

RENTAL = {
    "rental_company": "acme  locações",
    "rental_work_site": "Obra X",
    "rental_start_date": "2025-01-10",
}
MAINTENANCE = {
    "maintenance_company": "Oficina Norte",
    "maintenance_work_site": "Galpão 2",
    "maintenance_arrival_date": date(2025, 1, 8),
    "maintenance_departure_date": date(2025, 1, 15),
    "maintenance_description": "Troca de rolamento",
}


def populated_groups(asset: Asset) -> set[str]:
    return {
        location_type
        for location_type, fields in LOCATION_FIELD_GROUPS.items()
        if any(getattr(asset, field) is not None for field in fields)
    }


def test_register_asset_starts_in_deposit_with_default_description(db_session):
    asset = register_asset(
        db_session,
        {"asset_code": "001234", "equipment_name": "gerador 55kva", "manufacturer": "Cummins"},
        today=TODAY,
    )

    assert asset.asset_code == "001234"
    assert asset.location_type == "deposito_malta"
    assert asset.deposito_description == "Aguardando definição de localização"
    assert asset.equipment_name == "GERADOR 55KVA"
    assert asset.manufacturer == "CUMMINS"
    assert asset.available_for_rental is True
    assert asset.effective_registration_date == TODAY
    assert asset.version == 1
    assert populated_groups(asset) == {"deposito_malta"}


def test_register_asset_pads_code_and_rejects_duplicates(db_session, make_asset):
    asset = make_asset("1234")
    assert asset.asset_code == "001234"

    with pytest.raises(DuplicateAssetCode) as exc_info:
        make_asset("00-1234")

    assert exc_info.value.duplicate_code == "001234"
    assert exc_info.value.existing_id == asset.id
    assert exc_info.value.status_code == 409


@pytest.mark.parametrize("raw_code", ["", "12A4", "1234567"])
def test_register_asset_rejects_malformed_codes(db_session, make_asset, raw_code):
    with pytest.raises(ValidationError) as exc_info:
        make_asset(raw_code)

    assert exc_info.value.fields == ["asset_code"]
    assert db_session.query(Asset).count() == 0


def test_register_asset_requires_name_and_manufacturer(db_session):
    with pytest.raises(ValidationError) as exc_info:
        register_asset(db_session, {"asset_code": "55", "equipment_name": "  "}, today=TODAY)

    assert exc_info.value.fields == ["equipment_name", "manufacturer"]


def test_register_asset_rejects_future_registration_date(db_session, make_asset):
    with pytest.raises(InvalidDateRange) as exc_info:
        make_asset("77", registered_on=date(2025, 1, 16))

    assert exc_info.value.bound == "future"


def test_store_uniqueness_violation_surfaces_as_duplicate(db_session, make_asset):
    make_asset("4321")
    clone = Asset(
        asset_code="004321",
        equipment_name="CLONE",
        manufacturer="CLONE",
        location_type="deposito_malta",
        available_for_rental=True,
        was_replaced=False,
    )

    with pytest.raises(DuplicateAssetCode):
        with _store_errors(db_session, asset_code="004321"):
            db_session.add(clone)
            db_session.flush()

    assert db_session.query(Asset).count() == 1


def test_move_to_rental_nulls_deposit_group_and_records_one_event(db_session, make_asset, operator, history_of):
    asset = make_asset()

    moved = move_asset(db_session, asset.id, "locacao", RENTAL, user=operator, today=TODAY)

    assert moved.location_type == "locacao"
    assert moved.deposito_description is None
    assert moved.rental_company == "ACME LOCAÇÕES"
    assert moved.rental_work_site == "OBRA X"
    assert moved.rental_start_date == date(2025, 1, 10)
    assert moved.available_for_rental is False
    assert moved.version == 2
    assert populated_groups(moved) == {"locacao"}

    events = history_of(moved)
    assert len(events) == 1
    event = events[0]
    assert event.tipo_evento == "MOVIMENTAÇÃO"
    assert event.campo_alterado == "location_type"
    assert (event.valor_antigo, event.valor_novo) == ("deposito_malta", "locacao")
    assert event.data_evento_real == date(2025, 1, 10)
    assert event.registro_retroativo is True
    assert event.usuario_modificacao == "user-1"
    assert event.usuario_nome == "Operador Teste"
    assert "Depósito Malta" in event.detalhes_evento
    assert "ACME LOCAÇÕES" in event.detalhes_evento


def test_move_rejects_start_before_registration(db_session, make_asset, history_of):
    asset = make_asset()

    with pytest.raises(InvalidDateRange) as exc_info:
        move_asset(db_session, asset.id, "locacao", {**RENTAL, "rental_start_date": "2024-12-20"}, today=TODAY)

    assert exc_info.value.bound == "registration_floor"
    assert exc_info.value.field == "rental_start_date"
    assert exc_info.value.user_message.startswith("[PAT 001234]")
    assert "01/01/2025" in exc_info.value.message
    db_session.refresh(asset)
    assert asset.location_type == "deposito_malta"
    assert history_of(asset) == []


def test_move_requires_justification_beyond_retroactive_limit(db_session, make_asset):
    asset = make_asset(registered_on=date(2024, 12, 1))
    fields = {**RENTAL, "rental_start_date": date(2025, 1, 1)}

    with pytest.raises(InvalidDateRange) as exc_info:
        move_asset(db_session, asset.id, "locacao", fields, today=TODAY)
    assert exc_info.value.bound == "retroactive_limit"

    moved = move_asset(
        db_session,
        asset.id,
        "locacao",
        {**fields, "retroactive_justification": "Contrato assinado antes do cadastro"},
        today=TODAY,
    )
    assert moved.rental_start_date == date(2025, 1, 1)
    assert moved.retroactive_justification == "Contrato assinado antes do cadastro"

    moved = move_asset(db_session, asset.id, "deposito_malta", {}, today=TODAY)
    assert moved.retroactive_justification is None


@pytest.mark.parametrize(
    "created_at, expected",
    [
        (datetime(2025, 1, 15, 1, 30), date(2025, 1, 14)),
        (datetime(2025, 1, 15, 2, 0, tzinfo=timezone.utc), date(2025, 1, 14)),
        (datetime(2025, 1, 15, 12, 0), date(2025, 1, 15)),
    ],
)
def test_registration_floor_uses_business_date_of_creation(created_at, expected):
    asset = Asset(asset_code="000001", created_at=created_at)

    assert registration_floor(asset) == expected


def test_move_rejects_future_start(db_session, make_asset):
    asset = make_asset()

    with pytest.raises(InvalidDateRange) as exc_info:
        move_asset(db_session, asset.id, "locacao", {**RENTAL, "rental_start_date": "2025-01-16"}, today=TODAY)

    assert exc_info.value.bound == "future"


@pytest.mark.parametrize(
    "end_date, should_fail",
    [(date(2025, 1, 9), True), (date(2025, 1, 10), False), (date(2025, 3, 1), False)],
)
def test_move_rejects_end_before_start(db_session, make_asset, end_date, should_fail):
    asset = make_asset()
    fields = {**RENTAL, "rental_end_date": end_date}

    if should_fail:
        with pytest.raises(InvalidDateRange) as exc_info:
            move_asset(db_session, asset.id, "locacao", fields, today=TODAY)
        assert exc_info.value.bound == "end_before_start"
    else:
        moved = move_asset(db_session, asset.id, "locacao", fields, today=TODAY)
        assert moved.rental_end_date == end_date


def test_move_names_missing_required_fields(db_session, make_asset):
    asset = make_asset()

    with pytest.raises(ValidationError) as exc_info:
        move_asset(db_session, asset.id, "em_manutencao", {"maintenance_company": "Oficina"}, today=TODAY)

    assert exc_info.value.fields == [
        "maintenance_work_site",
        "maintenance_arrival_date",
        "maintenance_description",
    ]


def test_move_back_to_deposit_honours_availability_override(db_session, make_asset):
    asset = make_asset()
    move_asset(db_session, asset.id, "locacao", RENTAL, today=TODAY)

    moved = move_asset(
        db_session,
        asset.id,
        "deposito_malta",
        {"deposito_description": "Prateleira B", "available_for_rental": False},
        today=TODAY,
    )

    assert moved.location_type == "deposito_malta"
    assert moved.deposito_description == "Prateleira B"
    assert moved.rental_company is None
    assert moved.rental_start_date is None
    assert moved.available_for_rental is False
    assert populated_groups(moved) == {"deposito_malta"}


def test_move_rejects_inspection_target_and_assets_waiting_inspection(db_session, make_asset):
    asset = make_asset()

    with pytest.raises(InvalidStateTransition):
        move_asset(db_session, asset.id, "aguardando_laudo", {}, today=TODAY)

    send_to_inspection(db_session, asset.id, today=TODAY)
    with pytest.raises(InvalidStateTransition) as exc_info:
        move_asset(db_session, asset.id, "locacao", RENTAL, today=TODAY)
    assert exc_info.value.current == "aguardando_laudo"


def test_move_with_stale_version_is_rejected(db_session, make_asset):
    asset = make_asset()

    with pytest.raises(StaleAssetVersion) as exc_info:
        move_asset(db_session, asset.id, "locacao", RENTAL, expected_version=5, today=TODAY)

    assert exc_info.value.current == 1
    moved = move_asset(db_session, asset.id, "locacao", RENTAL, expected_version=1, today=TODAY)
    assert moved.version == 2


def test_retroactive_warnings_cover_recent_past_only():
    assert retroactive_warnings("locacao", {"rental_start_date": date(2025, 1, 10)}, today=TODAY) == [
        "rental_start_date esta 5 dias no passado"
    ]
    assert retroactive_warnings("locacao", {"rental_start_date": TODAY}, today=TODAY) == []
    assert retroactive_warnings("deposito_malta", {}, today=TODAY) == []


def test_send_to_inspection_preserves_previous_location(db_session, make_asset, history_of):
    asset = make_asset()
    move_asset(db_session, asset.id, "em_manutencao", MAINTENANCE, today=TODAY)

    held = send_to_inspection(db_session, asset.id, notes="Ruído no motor", today=TODAY)

    assert held.location_type == "aguardando_laudo"
    assert held.inspection_start_date == TODAY
    assert held.available_for_rental is False
    assert held.maintenance_company == "OFICINA NORTE"
    assert held.maintenance_arrival_date == date(2025, 1, 8)
    assert history_of(held)[-1].valor_novo == "aguardando_laudo"

    with pytest.raises(InvalidStateTransition):
        send_to_inspection(db_session, asset.id, today=TODAY)


def test_resolve_requires_asset_waiting_inspection(db_session, make_asset):
    asset = make_asset()

    with pytest.raises(InvalidStateTransition):
        resolve_inspection(db_session, asset.id, "approve", today=TODAY)


def test_approve_archives_maintenance_cycle_and_returns_to_deposit(db_session, make_asset, operator, history_of):
    asset = make_asset()
    move_asset(db_session, asset.id, "em_manutencao", MAINTENANCE, today=TODAY)
    send_to_inspection(db_session, asset.id, today=TODAY)
    events_before = len(history_of(asset))

    approved = resolve_inspection(db_session, asset.id, "approve", {}, user=operator, today=TODAY)

    assert approved.location_type == "deposito_malta"
    assert approved.available_for_rental is True
    assert approved.inspection_start_date is None
    assert all(getattr(approved, field) is None for field in LOCATION_FIELD_GROUPS["em_manutencao"])
    assert populated_groups(approved) == {"deposito_malta"}

    cycles = db_session.query(AssetLifecycleCycle).filter(AssetLifecycleCycle.asset_id == asset.id).all()
    assert len(cycles) == 1
    cycle = cycles[0]
    assert cycle.cycle_number == 1
    assert cycle.cycle_kind == "manutencao"
    assert cycle.company == "OFICINA NORTE"
    assert cycle.duration_days == 7
    assert cycle.closed_by == "user-1"
    assert cycle.reason.startswith("Ciclo de manutenção encerrado (7 dias)")

    events = history_of(approved)
    assert len(events) == events_before + 1
    assert events[-1].tipo_evento == "DECISÃO PÓS-LAUDO"
    assert events[-1].detalhes_evento.startswith("Equipamento aprovado e disponibilizado para locação")


def test_approve_leaves_nothing_behind_when_commit_fails(db_session, make_asset, history_of, monkeypatch):
    asset = make_asset()
    move_asset(db_session, asset.id, "em_manutencao", MAINTENANCE, today=TODAY)
    send_to_inspection(db_session, asset.id, today=TODAY)
    events_before = len(history_of(asset))

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db_session, "commit", failing_commit)
    with pytest.raises(StoreFailure):
        resolve_inspection(db_session, asset.id, "approve", {}, today=TODAY)
    monkeypatch.undo()

    db_session.refresh(asset)
    assert asset.location_type == "aguardando_laudo"
    assert asset.maintenance_company == "OFICINA NORTE"
    assert asset.available_for_rental is False
    assert db_session.query(AssetLifecycleCycle).count() == 0
    assert len(history_of(asset)) == events_before


def test_cycle_numbers_increase_per_asset(db_session, make_asset):
    asset = make_asset()
    for _ in range(2):
        move_asset(db_session, asset.id, "locacao", RENTAL, today=TODAY)
        send_to_inspection(db_session, asset.id, today=TODAY)
        resolve_inspection(db_session, asset.id, "approve", today=TODAY)

    numbers = [
        cycle.cycle_number
        for cycle in db_session.query(AssetLifecycleCycle).order_by(AssetLifecycleCycle.cycle_number).all()
    ]
    assert numbers == [1, 2]


def test_maintenance_decision_reuses_preserved_company(db_session, make_asset, history_of):
    asset = make_asset()
    move_asset(db_session, asset.id, "em_manutencao", MAINTENANCE, today=TODAY)
    send_to_inspection(db_session, asset.id, today=TODAY)

    resolved = resolve_inspection(
        db_session,
        asset.id,
        "maintenance",
        {"maintenance_arrival_date": TODAY, "maintenance_description": "Retífica do motor"},
        today=TODAY,
    )

    assert resolved.location_type == "em_manutencao"
    assert resolved.maintenance_company == "OFICINA NORTE"
    assert resolved.maintenance_work_site == "GALPÃO 2"
    assert resolved.maintenance_departure_date is None
    assert resolved.inspection_start_date is None
    assert resolved.available_for_rental is False
    assert history_of(resolved)[-1].detalhes_evento == "Enviado para manutenção em OFICINA NORTE - GALPÃO 2"


def test_return_decision_validates_dates_like_a_move(db_session, make_asset):
    asset = make_asset()
    move_asset(db_session, asset.id, "locacao", RENTAL, today=TODAY)
    send_to_inspection(db_session, asset.id, today=TODAY)

    with pytest.raises(InvalidDateRange) as exc_info:
        resolve_inspection(
            db_session,
            asset.id,
            "return",
            {"rental_start_date": TODAY, "rental_end_date": date(2025, 1, 14)},
            today=TODAY,
        )
    assert exc_info.value.bound == "end_before_start"

    resolved = resolve_inspection(db_session, asset.id, "return", {"rental_start_date": TODAY}, today=TODAY)
    assert resolved.location_type == "locacao"
    assert resolved.rental_company == "ACME LOCAÇÕES"
    assert resolved.rental_start_date == TODAY
    assert resolved.maintenance_company is None
    assert resolved.available_for_rental is False
    assert db_session.query(AssetLifecycleCycle).count() == 0


def test_update_asset_details_detects_changes(db_session, make_asset, operator, history_of):
    asset = make_asset()

    updated, changed = update_asset_details(
        db_session,
        asset.id,
        {"model": "mx 400", "manufacturer": "menegotti", "comments": "Revisado"},
        user=operator,
        today=TODAY,
    )

    assert changed == ["model", "comments"]
    assert updated.model == "MX 400"
    events = history_of(updated)
    assert len(events) == 1
    assert events[0].tipo_evento == "EDIÇÃO"
    assert events[0].detalhes_evento == "Dados cadastrais atualizados. Campos: model, comments"

    _, unchanged = update_asset_details(db_session, asset.id, {"model": "MX 400"}, today=TODAY)
    assert unchanged == []
    assert len(history_of(updated)) == 1


def test_asset_code_cannot_be_changed(db_session, make_asset):
    asset = make_asset()

    with pytest.raises(ValidationError):
        update_asset_details(db_session, asset.id, {"asset_code": "9999"}, today=TODAY)

    db_session.refresh(asset)
    assert asset.asset_code == "001234"


def test_every_location_field_belongs_to_one_group():
    assert len(ALL_LOCATION_FIELDS) == len(set(ALL_LOCATION_FIELDS))
