"""
OTA status reports

Devices report progress while downloading and flashing firmware. Rows are
append-only; the latest row per device is the current state.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from energy_monitor.core.timeutils import utcnow

from . import Base


class OtaStatusUpdate(Base):
    __tablename__ = "ota_status_updates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(
        String(64),
        ForeignKey("devices.device_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(String(50), nullable=False)  # "downloading", "installing", "success", "failed"
    progress = Column(Integer, nullable=True)
    message = Column(Text, nullable=True)
    firmware_version = Column(String(64), nullable=True)
    reported_at = Column(DateTime(timezone=True), nullable=True)  # device clock
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return (
            f"<OtaStatusUpdate(id={self.id}, device_id={self.device_id}, "
            f"status={self.status}, progress={self.progress})>"
        )
