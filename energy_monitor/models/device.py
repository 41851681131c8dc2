from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, relationship

from energy_monitor.core.timeutils import utcnow

from . import Base


class Device(Base):
    """A registered ESP32 sensor board with a fixed number of current channels."""

    __tablename__ = "devices"

    device_id: Mapped[str] = Column(String(64), primary_key=True, index=True)
    device_name: Mapped[str] = Column(String(255), nullable=False)
    channel_count: Mapped[int] = Column(Integer, nullable=False)
    owner_id: Mapped[str] = Column(String(255), nullable=False, index=True)
    created_at: Mapped[datetime] = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    channels: Mapped[list[Channel]] = relationship(
        "Channel",
        back_populates="device",
        cascade="all, delete-orphan",
        order_by="Channel.channel_number",
        lazy="selectin",
    )


class Channel(Base):
    __tablename__ = "device_channels"

    device_id: Mapped[str] = Column(
        String(64),
        ForeignKey("devices.device_id", ondelete="CASCADE"),
        primary_key=True,
    )
    channel_number: Mapped[int] = Column(Integer, primary_key=True)
    custom_name: Mapped[str] = Column(String(255), nullable=False)
    owner_id: Mapped[str] = Column(String(255), nullable=False)
    created_at: Mapped[datetime] = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    device: Mapped[Device] = relationship("Device", back_populates="channels")

    @staticmethod
    def default_name(channel_number: int) -> str:
        return f"House{channel_number}"
