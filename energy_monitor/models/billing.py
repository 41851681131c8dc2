

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String

from energy_monitor.core.timeutils import utcnow

from . import Base


class BillSetting(Base):
    """Total bill amount shared across a device's channels."""

    __tablename__ = "total_bill_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(
        String(64),
        ForeignKey("devices.device_id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    total_bill_amount = Column(Float, nullable=False, default=0.0)
    billing_period = Column(String(32), nullable=False, default="monthly")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
