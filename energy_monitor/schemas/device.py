from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ChannelRead(BaseModel):
    channel_number: int
    custom_name: str

    model_config = ConfigDict(from_attributes=True)


class ChannelUpdate(BaseModel):
    custom_name: str = Field(..., min_length=1, max_length=255)


class DeviceBase(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=64)
    device_name: str = Field(..., min_length=1, max_length=255)
    channel_count: int = Field(..., ge=1, le=16)

    model_config = ConfigDict(from_attributes=True)


class DeviceCreate(DeviceBase):
    pass


class DeviceUpdate(BaseModel):
    device_name: str = Field(..., min_length=1, max_length=255)


class DeviceRead(DeviceBase):
    owner_id: str
    created_at: datetime
    channels: list[ChannelRead] = Field(default_factory=list)


class ProfileUpdate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)


class ProfileRead(BaseModel):
    id: str
    full_name: str | None = None

    model_config = ConfigDict(from_attributes=True)
