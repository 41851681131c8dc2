from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class BillSettingUpdate(BaseModel):
    total_bill_amount: float = Field(..., ge=0, allow_inf_nan=False)
    billing_period: str = Field("monthly", min_length=1, max_length=32)


class BillSettingRead(BaseModel):
    device_id: str
    total_bill_amount: float
    billing_period: str
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChannelBilling(BaseModel):
    channel_number: int
    custom_name: str
    energy_kwh: float
    percentage: float
    cost: float


class DeviceBilling(BaseModel):
    device_id: str
    total_bill_amount: float
    billing_period: str
    total_energy_kwh: float
    channels: list[ChannelBilling]
