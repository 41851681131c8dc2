from datetime import datetime

from pydantic import BaseModel


class DeviceLiveness(BaseModel):
    device_id: str
    online: bool
    channels: dict[int, bool]
    threshold_s: float
    evaluated_at: datetime


class OnlineStats(BaseModel):
    online_devices: int
    total_devices: int
