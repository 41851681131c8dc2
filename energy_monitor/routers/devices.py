from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from energy_monitor import crud
from energy_monitor.core.config import Settings
from energy_monitor.core.timeutils import utcnow
from energy_monitor.dependencies import (
    get_config,
    get_current_user_id,
    get_reading_cache,
    get_session,
)
from energy_monitor.errors import ConflictError, DeviceNotFoundError, ForbiddenError, NotFoundError
from energy_monitor.models.device import Device
from energy_monitor.schemas.billing import (
    BillSettingRead,
    BillSettingUpdate,
    ChannelBilling,
    DeviceBilling,
)
from energy_monitor.schemas.device import (
    ChannelRead,
    ChannelUpdate,
    DeviceCreate,
    DeviceRead,
    DeviceUpdate,
    ProfileRead,
    ProfileUpdate,
)
from energy_monitor.schemas.liveness import DeviceLiveness
from energy_monitor.services.billing import allocate
from energy_monitor.services.liveness import evaluate
from energy_monitor.services.reading_cache import ReadingCache

router = APIRouter()


async def _ensure_device(session: AsyncSession, device_id: str) -> Device:
    device = await crud.get_device(session, device_id)
    if device is None:
        raise DeviceNotFoundError(f"Device {device_id} not found")
    return device


async def _ensure_owned_device(session: AsyncSession, device_id: str, user_id: str) -> Device:
    device = await _ensure_device(session, device_id)
    if device.owner_id != user_id:
        raise ForbiddenError("Only the device owner can change this device")
    return device


@router.post("/devices", response_model=DeviceRead, status_code=status.HTTP_201_CREATED)
async def register_device(
    payload: DeviceCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
):
    if await crud.get_device(session, payload.device_id) is not None:
        raise ConflictError(f"Device {payload.device_id} is already registered")
    return await crud.create_device(
        session,
        device_id=payload.device_id,
        device_name=payload.device_name,
        channel_count=payload.channel_count,
        owner_id=user_id,
    )


@router.get("/devices", response_model=list[DeviceRead])
async def list_devices(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
):
    return await crud.list_devices(session, owner_id=user_id)


@router.get("/devices/{device_id}", response_model=DeviceRead)
async def get_device(
    device_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
):
    return await _ensure_device(session, device_id)


@router.patch("/devices/{device_id}", response_model=DeviceRead)
async def rename_device(
    device_id: str,
    payload: DeviceUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
):
    device = await _ensure_owned_device(session, device_id, user_id)
    return await crud.update_device(session, device, payload.model_dump())


@router.delete("/devices/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_device(
    device_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    cache: ReadingCache = Depends(get_reading_cache),
):
    device = await _ensure_owned_device(session, device_id, user_id)
    await crud.delete_device(session, device)
    cache.evict_device(device_id)


@router.get("/devices/{device_id}/channels", response_model=list[ChannelRead])
async def list_channels(device_id: str, session: AsyncSession = Depends(get_session)):
    await _ensure_device(session, device_id)
    return await crud.list_channels(session, device_id)


@router.patch("/devices/{device_id}/channels/{channel_number}", response_model=ChannelRead)
async def rename_channel(
    device_id: str,
    channel_number: int,
    payload: ChannelUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
):
    await _ensure_owned_device(session, device_id, user_id)
    channel = await crud.get_channel(session, device_id, channel_number)
    if channel is None:
        raise NotFoundError(f"Channel {channel_number} not found on device {device_id}")
    return await crud.rename_channel(session, channel, payload.custom_name)


@router.get("/devices/{device_id}/bill", response_model=BillSettingRead)
async def get_bill(device_id: str, session: AsyncSession = Depends(get_session)):
    await _ensure_device(session, device_id)
    setting = await crud.get_bill_setting(session, device_id)
    if setting is None:
        setting = await crud.upsert_bill_setting(session, device_id, total_bill_amount=0.0, billing_period="monthly")
    return setting


@router.put("/devices/{device_id}/bill", response_model=BillSettingRead)
async def update_bill(
    device_id: str,
    payload: BillSettingUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
):
    await _ensure_owned_device(session, device_id, user_id)
    return await crud.upsert_bill_setting(
        session,
        device_id,
        total_bill_amount=payload.total_bill_amount,
        billing_period=payload.billing_period,
    )


@router.get("/devices/{device_id}/liveness", response_model=DeviceLiveness)
async def device_liveness(
    device_id: str,
    session: AsyncSession = Depends(get_session),
    cache: ReadingCache = Depends(get_reading_cache),
    config: Settings = Depends(get_config),
):
    device = await _ensure_device(session, device_id)
    snapshot = evaluate(cache.for_device(device_id), utcnow(), config.liveness_timeout_s)
    return DeviceLiveness(
        device_id=device_id,
        online=snapshot.device_online(device_id),
        channels=snapshot.device_channels(device_id, device.channel_count),
        threshold_s=snapshot.threshold_s,
        evaluated_at=snapshot.evaluated_at,
    )


@router.get("/devices/{device_id}/billing", response_model=DeviceBilling)
async def device_billing(
    device_id: str,
    session: AsyncSession = Depends(get_session),
    cache: ReadingCache = Depends(get_reading_cache),
):
    device = await _ensure_device(session, device_id)
    setting = await crud.get_bill_setting(session, device_id)
    bill = float(setting.total_bill_amount) if setting else 0.0

    cached = cache.channel_energies(device_id)
    energies = {n: cached.get(n, 0.0) for n in range(1, device.channel_count + 1)}
    shares = allocate(energies, bill)
    names = {channel.channel_number: channel.custom_name for channel in device.channels}

    return DeviceBilling(
        device_id=device_id,
        total_bill_amount=bill,
        billing_period=setting.billing_period if setting else "monthly",
        total_energy_kwh=sum(energies.values()) / 1000.0,
        channels=[
            ChannelBilling(
                channel_number=n,
                custom_name=names.get(n, f"House{n}"),
                energy_kwh=share.energy_wh / 1000.0,
                percentage=share.percentage,
                cost=share.cost,
            )
            for n, share in shares.items()
        ],
    )


@router.put("/profile", response_model=ProfileRead)
async def update_profile(
    payload: ProfileUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
):
    return await crud.upsert_profile(session, user_id, payload.full_name)
