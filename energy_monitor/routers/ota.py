from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from energy_monitor import crud
from energy_monitor.dependencies import get_current_user_id, get_firmware_store, get_session
from energy_monitor.errors import DeviceNotFoundError, ForbiddenError, ValidationError
from energy_monitor.schemas.esp32 import OtaStatusRead
from energy_monitor.services.firmware_store import FirmwareStore

router = APIRouter()


@router.post("/devices/{device_id}/firmware", status_code=status.HTTP_201_CREATED)
async def upload_firmware(
    device_id: str,
    file: UploadFile = File(...),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    store: FirmwareStore = Depends(get_firmware_store),
):
    device = await crud.get_device(session, device_id)
    if device is None:
        raise DeviceNotFoundError(f"Device {device_id} not found")
    if device.owner_id != user_id:
        raise ForbiddenError("Only the device owner can upload firmware")

    data = await file.read()
    if not data:
        raise ValidationError("Firmware file is empty")

    stored = await store.upload(device_id, file.filename or "", data)
    return {
        "success": True,
        "filename": stored.filename,
        "firmware_version": stored.version,
        "file_size": stored.size,
    }


@router.get("/devices/{device_id}/ota-status", response_model=list[OtaStatusRead])
async def list_ota_status(
    device_id: str,
    limit: int = Query(20, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
):
    if await crud.get_device(session, device_id) is None:
        raise DeviceNotFoundError(f"Device {device_id} not found")
    return await crud.list_ota_status(session, device_id, limit=limit)


@router.get("/ota/files/{device_id}/{filename}")
async def download_firmware(
    device_id: str,
    filename: str,
    store: FirmwareStore = Depends(get_firmware_store),
):
    data = await store.open(device_id, filename)
    return Response(
        content=data,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
