from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func

from app.database.base import Base


class AssetLifecycleCycle(Base):
    __tablename__ = "asset_lifecycle_history"
    __table_args__ = (
        UniqueConstraint("asset_id", "cycle_number", name="uq_asset_lifecycle_asset_cycle"),
    )

    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    asset_code = Column(String(6), nullable=False, index=True)
    cycle_number = Column(Integer, nullable=False)
    cycle_kind = Column(String(20), nullable=False)
    company = Column(String(180), nullable=True)
    work_site = Column(String(180), nullable=True)
    cycle_started_at = Column(Date, nullable=True)
    cycle_ended_at = Column(Date, nullable=True)
    duration_days = Column(Integer, nullable=True)
    cycle_closed_at = Column(DateTime(timezone=True), nullable=False)
    closed_by = Column(String(120), nullable=True)
    reason = Column(Text, nullable=True)
    archived_withdrawals_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
