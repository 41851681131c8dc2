"""Endpoints polled and posted to by the ESP32 firmware."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from energy_monitor import crud
from energy_monitor.dependencies import (
    get_firmware_store,
    get_ingest_relay,
    get_publisher,
    get_reset_tracker,
    get_session,
)
from energy_monitor.schemas.esp32 import (
    EnergySample,
    IngestResponse,
    OtaCheckRequest,
    OtaCheckResponse,
    OtaStatusReport,
    RegistrationCheck,
    ResetCommandResponse,
    StatusAck,
)
from energy_monitor.services.firmware_store import FirmwareStore
from energy_monitor.services.ingest_relay import IngestRelay
from energy_monitor.services.ota import check_for_update, record_status
from energy_monitor.services.realtime import RealtimePublisher
from energy_monitor.services.reset_quorum import ResetQuorumTracker

router = APIRouter()


@router.post("/energy", response_model=IngestResponse)
async def upload_energy(
    sample: EnergySample,
    session: AsyncSession = Depends(get_session),
    relay: IngestRelay = Depends(get_ingest_relay),
):
    reading = await relay.ingest(session, sample)
    return IngestResponse(calculated_cost=reading.cost)


@router.get("/registration", response_model=RegistrationCheck)
async def check_registration(
    device_id: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
):
    device = await crud.get_device(session, device_id)
    if device is None:
        return RegistrationCheck(registered=False, message="Device not registered")
    return RegistrationCheck(
        registered=True,
        device_id=device.device_id,
        device_name=device.device_name,
        channel_count=device.channel_count,
        message="Device registered",
    )


@router.get("/reset-command", response_model=ResetCommandResponse, response_model_exclude_none=True)
async def poll_reset_command(
    device_id: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
    tracker: ResetQuorumTracker = Depends(get_reset_tracker),
):
    return await tracker.poll_reset_command(session, device_id)


@router.post("/ota/check", response_model=OtaCheckResponse, response_model_exclude_none=True)
async def ota_check(
    payload: OtaCheckRequest,
    request: Request,
    store: FirmwareStore = Depends(get_firmware_store),
):
    result = await check_for_update(store, payload.device_id, payload.current_firmware_version)
    if result.firmware_url and result.firmware_url.startswith("/"):
        # Local store links are relative to this server
        result.firmware_url = str(request.base_url).rstrip("/") + result.firmware_url
    return result


@router.post("/ota/status", response_model=StatusAck)
async def ota_status(
    report: OtaStatusReport,
    session: AsyncSession = Depends(get_session),
    publisher: RealtimePublisher = Depends(get_publisher),
):
    await record_status(session, report, publisher)
    return StatusAck(message="Status recorded")
