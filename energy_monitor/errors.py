"""Error taxonomy shared by services and routers.

Services raise these; ``main`` registers handlers that turn them into the
``{"success": false, "error": ...}`` envelope with the class' status code.
"""
from __future__ import annotations


class EnergyMonitorError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(EnergyMonitorError):
    status_code = 400
    default_message = "Invalid request"


class InvalidChannelError(ValidationError):
    default_message = "Invalid channel number"


class AuthenticationError(EnergyMonitorError):
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(EnergyMonitorError):
    status_code = 403
    default_message = "Not allowed"


class DeviceNotRegisteredError(ForbiddenError):
    default_message = "Device not registered"


class NotFoundError(EnergyMonitorError):
    status_code = 404
    default_message = "Not found"


class DeviceNotFoundError(NotFoundError):
    default_message = "Device not found"


class ConflictError(EnergyMonitorError):
    status_code = 409
    default_message = "Conflict"


class DuplicateVoteError(ConflictError):
    default_message = "You have already voted for this reset"


class ResetPendingError(ConflictError):
    default_message = "An energy reset is already waiting for the device to acknowledge"


class TransportError(EnergyMonitorError):
    """Storage, broker or object-store failure. Callers may retry."""

    status_code = 503
    default_message = "Backend service unavailable"
