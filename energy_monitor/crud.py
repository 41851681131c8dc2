"""CRUD helpers shared by routers and services."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Select, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from energy_monitor.core.timeutils import utcnow
from energy_monitor.models.billing import BillSetting
from energy_monitor.models.device import Channel, Device
from energy_monitor.models.ota import OtaStatusUpdate
from energy_monitor.models.profile import Profile
from energy_monitor.models.reset import ResetSession, ResetVote


# ---------------------------------------------------------------------------
# Device helpers


async def list_devices(session: AsyncSession, owner_id: str | None = None) -> list[Device]:
    """Return devices ordered by creation time, optionally only one owner's."""

    stmt: Select[tuple[Device]] = select(Device).order_by(Device.created_at.asc())
    if owner_id is not None:
        stmt = stmt.where(Device.owner_id == owner_id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_device(session: AsyncSession, device_id: str) -> Device | None:
    stmt: Select[tuple[Device]] = select(Device).where(Device.device_id == device_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def create_device(
    session: AsyncSession,
    *,
    device_id: str,
    device_name: str,
    channel_count: int,
    owner_id: str,
) -> Device:
    """Register a device with channels 1..N and an empty bill setting."""

    device = Device(
        device_id=device_id,
        device_name=device_name,
        channel_count=channel_count,
        owner_id=owner_id,
    )
    device.channels = [
        Channel(
            channel_number=number,
            custom_name=Channel.default_name(number),
            owner_id=owner_id,
        )
        for number in range(1, channel_count + 1)
    ]
    session.add(device)
    await session.flush()
    session.add(BillSetting(device_id=device_id, total_bill_amount=0.0, billing_period="monthly"))
    await session.commit()
    await session.refresh(device)
    return device


async def update_device(session: AsyncSession, device: Device, data: dict[str, Any]) -> Device:
    for key, value in data.items():
        setattr(device, key, value)
    await session.commit()
    await session.refresh(device)
    return device


async def delete_device(session: AsyncSession, device: Device) -> None:
    """Delete a device and every row that hangs off it."""

    device_id = device.device_id
    await session.execute(delete(ResetVote).where(ResetVote.device_id == device_id))
    await session.execute(delete(ResetSession).where(ResetSession.device_id == device_id))
    await session.execute(delete(OtaStatusUpdate).where(OtaStatusUpdate.device_id == device_id))
    await session.execute(delete(BillSetting).where(BillSetting.device_id == device_id))
    await session.delete(device)
    await session.commit()


async def count_devices(session: AsyncSession, owner_id: str | None = None) -> int:
    stmt = select(func.count()).select_from(Device)
    if owner_id is not None:
        stmt = stmt.where(Device.owner_id == owner_id)
    result = await session.execute(stmt)
    return int(result.scalar_one())


# ---------------------------------------------------------------------------
# Channel helpers


async def list_channels(session: AsyncSession, device_id: str) -> list[Channel]:
    stmt: Select[tuple[Channel]] = (
        select(Channel)
        .where(Channel.device_id == device_id)
        .order_by(Channel.channel_number.asc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_channel(session: AsyncSession, device_id: str, channel_number: int) -> Channel | None:
    stmt: Select[tuple[Channel]] = select(Channel).where(
        Channel.device_id == device_id,
        Channel.channel_number == channel_number,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def rename_channel(session: AsyncSession, channel: Channel, custom_name: str) -> Channel:
    channel.custom_name = custom_name
    await session.commit()
    await session.refresh(channel)
    return channel


# ---------------------------------------------------------------------------
# Bill settings


async def get_bill_setting(session: AsyncSession, device_id: str) -> BillSetting | None:
    stmt: Select[tuple[BillSetting]] = select(BillSetting).where(BillSetting.device_id == device_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_bill_amount(session: AsyncSession, device_id: str) -> float:
    """Total bill for a device, 0 when none has been configured."""

    setting = await get_bill_setting(session, device_id)
    if setting is None or setting.total_bill_amount is None:
        return 0.0
    return float(setting.total_bill_amount)


async def upsert_bill_setting(
    session: AsyncSession,
    device_id: str,
    *,
    total_bill_amount: float,
    billing_period: str,
) -> BillSetting:
    setting = await get_bill_setting(session, device_id)
    if setting is None:
        setting = BillSetting(device_id=device_id)
        session.add(setting)
    setting.total_bill_amount = total_bill_amount
    setting.billing_period = billing_period
    setting.updated_at = utcnow()
    await session.commit()
    await session.refresh(setting)
    return setting


# ---------------------------------------------------------------------------
# Profiles


async def get_profiles(session: AsyncSession, user_ids: list[str]) -> dict[str, Profile]:
    if not user_ids:
        return {}
    stmt: Select[tuple[Profile]] = select(Profile).where(Profile.id.in_(user_ids))
    result = await session.execute(stmt)
    return {profile.id: profile for profile in result.scalars().all()}


async def upsert_profile(session: AsyncSession, user_id: str, full_name: str) -> Profile:
    profile = await session.get(Profile, user_id)
    if profile is None:
        profile = Profile(id=user_id)
        session.add(profile)
    profile.full_name = full_name
    await session.commit()
    await session.refresh(profile)
    return profile


# ---------------------------------------------------------------------------
# OTA status


async def create_ota_status(
    session: AsyncSession,
    *,
    device_id: str,
    status: str,
    progress: int | None = None,
    message: str | None = None,
    firmware_version: str | None = None,
    reported_at=None,
) -> OtaStatusUpdate:
    row = OtaStatusUpdate(
        device_id=device_id,
        status=status,
        progress=progress,
        message=message,
        firmware_version=firmware_version,
        reported_at=reported_at,
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return row


async def list_ota_status(session: AsyncSession, device_id: str, limit: int = 20) -> list[OtaStatusUpdate]:
    stmt: Select[tuple[OtaStatusUpdate]] = (
        select(OtaStatusUpdate)
        .where(OtaStatusUpdate.device_id == device_id)
        .order_by(OtaStatusUpdate.created_at.desc(), OtaStatusUpdate.id.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
