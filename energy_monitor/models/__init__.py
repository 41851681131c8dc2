from sqlalchemy.orm import declarative_base

Base = declarative_base()

from .device import Channel, Device  # noqa: E402
from .billing import BillSetting  # noqa: E402
from .reset import ResetSession, ResetVote  # noqa: E402
from .profile import Profile  # noqa: E402
from .ota import OtaStatusUpdate  # noqa: E402

__all__ = [
    "Base",
    "Device",
    "Channel",
    "BillSetting",
    "ResetSession",
    "ResetVote",
    "Profile",
    "OtaStatusUpdate",
]
