from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from energy_monitor import crud
from energy_monitor.core.config import Settings
from energy_monitor.core.timeutils import utcnow
from energy_monitor.dependencies import get_config, get_current_user_id, get_reading_cache, get_session
from energy_monitor.schemas.liveness import OnlineStats
from energy_monitor.services.liveness import evaluate
from energy_monitor.services.reading_cache import ReadingCache

router = APIRouter()


@router.get("/online", response_model=OnlineStats)
async def online_stats(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    cache: ReadingCache = Depends(get_reading_cache),
    config: Settings = Depends(get_config),
):
    """Count the caller's devices with at least one live channel."""
    devices = await crud.list_devices(session, owner_id=user_id)
    device_ids = [device.device_id for device in devices]
    snapshot = evaluate(cache.snapshot(), utcnow(), config.liveness_timeout_s)
    return OnlineStats(
        online_devices=snapshot.online_device_count(device_ids),
        total_devices=len(device_ids),
    )
