from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

LocationType = Literal["deposito_malta", "locacao", "em_manutencao", "aguardando_laudo"]
InspectionDecision = Literal["approve", "maintenance", "return"]


class DepositFields(BaseModel):
    location_type: Literal["deposito_malta"] = "deposito_malta"
    deposito_description: Optional[str] = None
    malta_collaborator: Optional[str] = None


class RentalFields(BaseModel):
    location_type: Literal["locacao"] = "locacao"
    rental_company: Optional[str] = Field(default=None, max_length=180)
    rental_work_site: Optional[str] = Field(default=None, max_length=180)
    rental_start_date: Optional[date] = None
    rental_end_date: Optional[date] = None
    rental_contract_number: Optional[str] = Field(default=None, max_length=80)


class MaintenanceFields(BaseModel):
    location_type: Literal["em_manutencao"] = "em_manutencao"
    maintenance_company: Optional[str] = Field(default=None, max_length=180)
    maintenance_work_site: Optional[str] = Field(default=None, max_length=180)
    maintenance_arrival_date: Optional[date] = None
    maintenance_departure_date: Optional[date] = None
    maintenance_description: Optional[str] = None
    maintenance_delay_observations: Optional[str] = None


OperatingLocation = Annotated[
    Union[DepositFields, RentalFields, MaintenanceFields],
    Field(discriminator="location_type"),
]


class InspectionFields(BaseModel):
    location_type: Literal["aguardando_laudo"] = "aguardando_laudo"
    inspection_start_date: Optional[date] = None
    # Dados preservados da localizacao anterior enquanto aguarda laudo.
    previous_location: Optional[OperatingLocation] = None


LocationDetails = Annotated[
    Union[DepositFields, RentalFields, MaintenanceFields, InspectionFields],
    Field(discriminator="location_type"),
]


class MoveOptions(BaseModel):
    expected_version: Optional[int] = None
    retroactive_justification: Optional[str] = None
    notes: Optional[str] = None


class DepositMove(DepositFields, MoveOptions):
    available_for_rental: Optional[bool] = None


class RentalMove(RentalFields, MoveOptions):
    pass


class MaintenanceMove(MaintenanceFields, MoveOptions):
    pass


AssetMoveRequest = Annotated[
    Union[DepositMove, RentalMove, MaintenanceMove],
    Field(discriminator="location_type"),
]


class AssetBase(BaseModel):
    equipment_name: str = Field(min_length=1, max_length=180)
    manufacturer: str = Field(min_length=1, max_length=120)
    model: Optional[str] = Field(default=None, max_length=120)
    serial_number: Optional[str] = Field(default=None, max_length=120)
    voltage_combustion: Optional[str] = Field(default=None, max_length=60)
    supplier: Optional[str] = Field(default=None, max_length=180)
    purchase_date: Optional[date] = None
    unit_value: Optional[Decimal] = Field(default=None, ge=0)
    equipment_condition: Optional[Literal["NOVO", "USADO"]] = None
    comments: Optional[str] = None


class AssetCreate(AssetBase):
    asset_code: str = Field(min_length=1, max_length=20)
    effective_registration_date: Optional[date] = None
    deposito_description: Optional[str] = None
    malta_collaborator: Optional[str] = None


class AssetUpdate(BaseModel):
    equipment_name: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    voltage_combustion: Optional[str] = None
    supplier: Optional[str] = None
    purchase_date: Optional[date] = None
    unit_value: Optional[Decimal] = Field(default=None, ge=0)
    equipment_condition: Optional[Literal["NOVO", "USADO"]] = None
    comments: Optional[str] = None
    expected_version: Optional[int] = None


class AssetOut(AssetBase):
    id: int
    asset_code: str
    effective_registration_date: Optional[date] = None
    location_type: LocationType
    location: LocationDetails
    was_replaced: bool = False
    replaced_by_asset_id: Optional[int] = None
    replacement_reason: Optional[str] = None
    substitution_date: Optional[date] = None
    available_for_rental: bool = False
    next_maintenance_hourmeter: Optional[int] = None
    maintenance_status: Optional[Literal["em_dia", "proxima_manutencao", "atrasada"]] = None
    retroactive_justification: Optional[str] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InspectionDecisionRequest(BaseModel):
    decision: InspectionDecision
    deposito_description: Optional[str] = None
    rental_company: Optional[str] = None
    rental_work_site: Optional[str] = None
    rental_start_date: Optional[date] = None
    rental_end_date: Optional[date] = None
    rental_contract_number: Optional[str] = None
    maintenance_company: Optional[str] = None
    maintenance_work_site: Optional[str] = None
    maintenance_arrival_date: Optional[date] = None
    maintenance_departure_date: Optional[date] = None
    maintenance_description: Optional[str] = None
    maintenance_delay_observations: Optional[str] = None
    decision_notes: Optional[str] = None
    retroactive_justification: Optional[str] = None
    expected_version: Optional[int] = None


class InspectionRequest(BaseModel):
    expected_version: Optional[int] = None
    notes: Optional[str] = None


class SubstitutionRequest(BaseModel):
    new_asset_code: str = Field(min_length=1, max_length=20)
    reason: str = Field(min_length=1)
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class SubstitutionOut(BaseModel):
    old: AssetOut
    new: AssetOut


class AssetHistoryEventOut(BaseModel):
    id: int
    pat_id: int
    codigo_pat: str
    tipo_evento: str
    campo_alterado: Optional[str] = None
    valor_antigo: Optional[str] = None
    valor_novo: Optional[str] = None
    detalhes_evento: Optional[str] = None
    data_evento_real: Optional[date] = None
    registro_retroativo: bool = False
    usuario_modificacao: Optional[str] = None
    usuario_nome: Optional[str] = None
    data_modificacao: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AssetLifecycleCycleOut(BaseModel):
    id: int
    asset_id: int
    asset_code: str
    cycle_number: int
    cycle_kind: Literal["locacao", "manutencao"]
    company: Optional[str] = None
    work_site: Optional[str] = None
    cycle_started_at: Optional[date] = None
    cycle_ended_at: Optional[date] = None
    duration_days: Optional[int] = None
    cycle_closed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    reason: Optional[str] = None
    archived_withdrawals_count: int = 0

    model_config = ConfigDict(from_attributes=True)
