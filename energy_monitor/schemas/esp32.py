"""Payloads exchanged with the ESP32 firmware."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from energy_monitor.core.timeutils import coerce_timestamp


class EnergySample(BaseModel):
    device_id: str = Field(..., min_length=1)
    channel_number: int
    current: float = Field(..., allow_inf_nan=False)
    power: float = Field(..., allow_inf_nan=False)
    energy_wh: float = Field(..., ge=0, allow_inf_nan=False)

    model_config = ConfigDict(extra="ignore")


class IngestResponse(BaseModel):
    success: bool = True
    message: str = "Energy data received"
    calculated_cost: float


class RegistrationCheck(BaseModel):
    registered: bool
    device_id: str | None = None
    device_name: str | None = None
    channel_count: int | None = None
    message: str


class ResetCommandResponse(BaseModel):
    reset_command: bool
    message: str | None = None


class OtaCheckRequest(BaseModel):
    device_id: str = Field(..., min_length=1)
    current_firmware_version: str | None = None


class OtaCheckResponse(BaseModel):
    has_update: bool
    firmware_url: str | None = None
    filename: str | None = None
    firmware_version: str | None = None
    file_size: int | None = None
    uploaded_at: datetime | None = None
    message: str | None = None


class OtaStatusReport(BaseModel):
    device_id: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1, max_length=50)
    progress: int | None = Field(None, ge=0, le=100)
    message: str | None = None
    timestamp: datetime | None = None
    firmware_version: str | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> datetime | None:
        if value is None:
            return None
        parsed = coerce_timestamp(value)
        if parsed is None:
            raise ValueError("timestamp must be ISO-8601 or epoch seconds")
        return parsed


class OtaStatusRead(BaseModel):
    device_id: str
    status: str
    progress: int | None = None
    message: str | None = None
    firmware_version: str | None = None
    reported_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StatusAck(BaseModel):
    success: bool = True
    message: str
