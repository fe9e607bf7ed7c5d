from datetime import date
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

BulkMode = Literal["upsert", "insert_only", "update_only"]


class SyncAssetPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    asset_code: Optional[str] = None
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
    effective_registration_date: Optional[date] = None

    location_type: Optional[str] = None
    deposito_description: Optional[str] = None
    malta_collaborator: Optional[str] = None
    available_for_rental: Optional[bool] = None
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
    retroactive_justification: Optional[str] = None
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class SyncBulkSuccessItem(BaseModel):
    asset_code: str
    action: Literal["created", "updated"]


class SyncBulkFailedItem(BaseModel):
    asset_code: Optional[str] = None
    error: str


class SyncBulkSkippedItem(BaseModel):
    asset_code: str
    reason: str


class SyncBulkResults(BaseModel):
    success: list[SyncBulkSuccessItem] = Field(default_factory=list)
    failed: list[SyncBulkFailedItem] = Field(default_factory=list)
    skipped: list[SyncBulkSkippedItem] = Field(default_factory=list)
