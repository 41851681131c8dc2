"""
OTA update checks

Devices poll with the version they are running. The version is the token
taken from the firmware filename they last installed.
"""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from energy_monitor import crud
from energy_monitor.errors import DeviceNotRegisteredError, TransportError
from energy_monitor.models.ota import OtaStatusUpdate
from energy_monitor.schemas.esp32 import OtaCheckResponse, OtaStatusReport
from energy_monitor.services.firmware_store import FirmwareStore
from energy_monitor.services.realtime import RealtimePublisher, device_topic

logger = logging.getLogger(__name__)

OTA_UPDATE_EVENT = "ota_update"


def is_newer(candidate: str | None, current: str | None) -> bool:
    """Decide whether ``candidate`` should replace ``current``.

    Numeric tokens compare numerically. Anything else counts as an update
    whenever it differs, and a device that reports no version always updates.
    """

    if candidate is None:
        return False
    if not current:
        return True
    if candidate.isdecimal() and current.isdecimal():
        return int(candidate) > int(current)
    return candidate != current


async def check_for_update(
    store: FirmwareStore,
    device_id: str,
    current_version: str | None,
) -> OtaCheckResponse:
    latest = await store.latest(device_id)
    if latest is None:
        return OtaCheckResponse(has_update=False, message="No firmware available")

    candidate = latest.version or latest.filename
    if not is_newer(candidate, current_version):
        return OtaCheckResponse(has_update=False, message="Firmware is up to date")

    logger.info(
        f"Firmware update available for {device_id}",
        extra={"device_id": device_id, "current": current_version, "latest": candidate},
    )
    return OtaCheckResponse(
        has_update=True,
        firmware_url=latest.url,
        filename=latest.filename,
        firmware_version=candidate,
        file_size=latest.size,
        uploaded_at=latest.uploaded_at,
    )


async def record_status(
    session: AsyncSession,
    report: OtaStatusReport,
    publisher: RealtimePublisher | None = None,
) -> OtaStatusUpdate:
    device = await crud.get_device(session, report.device_id)
    if device is None:
        raise DeviceNotRegisteredError(f"Device {report.device_id} is not registered")

    row = await crud.create_ota_status(
        session,
        device_id=report.device_id,
        status=report.status,
        progress=report.progress,
        message=report.message,
        firmware_version=report.firmware_version,
        reported_at=report.timestamp,
    )
    logger.info(
        f"OTA status from {report.device_id}: {report.status}",
        extra={"device_id": report.device_id, "progress": report.progress},
    )

    if publisher is not None:
        try:
            await publisher.publish(
                device_topic(report.device_id),
                {
                    "event": OTA_UPDATE_EVENT,
                    "payload": {
                        "device_id": report.device_id,
                        "status": report.status,
                        "progress": report.progress,
                        "message": report.message,
                        "firmware_version": report.firmware_version,
                    },
                },
            )
        except TransportError as exc:
            logger.error(f"Failed to publish OTA status for {report.device_id}: {exc}")
    return row
