import asyncio
import contextlib
import logging

from fastapi import APIRouter, Depends, WebSocket

from energy_monitor.dependencies import get_local_bus
from energy_monitor.services.realtime import LocalBus, device_topic

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/devices/{device_id}")
async def device_events(websocket: WebSocket, device_id: str, bus: LocalBus = Depends(get_local_bus)):
    """Stream ``energy_update``, ``status_update`` and ``reset_update`` events for one device."""
    topic = device_topic(device_id)
    async with bus.subscribe(topic) as queue:
        await websocket.accept()
        logger.info("Realtime client connected", extra={"device_id": device_id})

        async def forward() -> None:
            while True:
                event = await queue.get()
                await websocket.send_json(event)

        forwarder = asyncio.create_task(forward())
        try:
            # Inbound frames are ignored; reading them is how the disconnect is noticed
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        finally:
            forwarder.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await forwarder
            logger.info("Realtime client disconnected", extra={"device_id": device_id})
