from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)

from app.database.base import Base


class Asset(Base):
    __tablename__ = "assets"
    __table_args__ = (
        UniqueConstraint("asset_code", name="uq_assets_asset_code"),
        Index("ix_assets_location_available", "location_type", "available_for_rental"),
    )

    id = Column(Integer, primary_key=True, index=True)
    asset_code = Column(String(6), nullable=False, index=True)

    equipment_name = Column(String(180), nullable=False)
    manufacturer = Column(String(120), nullable=False)
    model = Column(String(120), nullable=True)
    serial_number = Column(String(120), nullable=True)
    voltage_combustion = Column(String(60), nullable=True)
    supplier = Column(String(180), nullable=True)
    purchase_date = Column(Date, nullable=True)
    unit_value = Column(Numeric(12, 2), nullable=True)
    equipment_condition = Column(String(10), nullable=True)
    comments = Column(Text, nullable=True)
    effective_registration_date = Column(Date, nullable=True)

    location_type = Column(String(30), nullable=False, default="deposito_malta", index=True)

    deposito_description = Column(Text, nullable=True)
    malta_collaborator = Column(String(120), nullable=True)

    rental_company = Column(String(180), nullable=True, index=True)
    rental_work_site = Column(String(180), nullable=True)
    rental_start_date = Column(Date, nullable=True)
    rental_end_date = Column(Date, nullable=True)
    rental_contract_number = Column(String(80), nullable=True)

    maintenance_company = Column(String(180), nullable=True)
    maintenance_work_site = Column(String(180), nullable=True)
    maintenance_arrival_date = Column(Date, nullable=True)
    maintenance_departure_date = Column(Date, nullable=True)
    maintenance_description = Column(Text, nullable=True)
    maintenance_delay_observations = Column(Text, nullable=True)

    inspection_start_date = Column(Date, nullable=True)

    was_replaced = Column(Boolean, nullable=False, default=False)
    replaced_by_asset_id = Column(Integer, ForeignKey("assets.id"), nullable=True)
    replacement_reason = Column(Text, nullable=True)
    substitution_date = Column(Date, nullable=True)

    available_for_rental = Column(Boolean, nullable=False, default=True)
    next_maintenance_hourmeter = Column(Integer, nullable=True)
    maintenance_status = Column(String(30), nullable=True)
    retroactive_justification = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}
