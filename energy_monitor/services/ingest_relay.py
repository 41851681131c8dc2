"""
Ingest relay

Validates a sample from an ESP32 against the device registry, prices it
against the device's bill, caches it and broadcasts it to subscribers.
"""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from energy_monitor import crud
from energy_monitor.core.config import Settings, settings
from energy_monitor.core.timeutils import utcnow
from energy_monitor.errors import DeviceNotRegisteredError, InvalidChannelError
from energy_monitor.schemas.esp32 import EnergySample
from energy_monitor.services.billing import proportional_cost
from energy_monitor.services.reading_cache import Reading, ReadingCache
from energy_monitor.services.realtime import RealtimePublisher, device_topic

logger = logging.getLogger(__name__)

ENERGY_UPDATE_EVENT = "energy_update"


class IngestRelay:
    def __init__(
        self,
        cache: ReadingCache,
        publisher: RealtimePublisher,
        config: Settings | None = None,
    ) -> None:
        self._cache = cache
        self._publisher = publisher
        self._config = config or settings

    async def ingest(self, session: AsyncSession, sample: EnergySample) -> Reading:
        device = await crud.get_device(session, sample.device_id)
        if device is None:
            logger.info("Rejected sample from unregistered device", extra={"device_id": sample.device_id})
            raise DeviceNotRegisteredError(f"Device {sample.device_id} is not registered")

        if not 1 <= sample.channel_number <= device.channel_count:
            logger.info(
                "Rejected sample for channel out of range",
                extra={"device_id": sample.device_id, "channel": sample.channel_number},
            )
            raise InvalidChannelError(
                f"Invalid channel number {sample.channel_number}; "
                f"device {device.device_id} has channels 1-{device.channel_count}"
            )

        bill = await crud.get_bill_amount(session, device.device_id)

        energies = self._cache.channel_energies(device.device_id)
        energies[sample.channel_number] = sample.energy_wh
        total_energy = sum(
            energy for channel, energy in energies.items() if 1 <= channel <= device.channel_count
        )
        cost = proportional_cost(sample.energy_wh, total_energy, bill)

        reading = Reading(
            device_id=device.device_id,
            channel_number=sample.channel_number,
            current=sample.current,
            power=sample.power,
            energy_wh=sample.energy_wh,
            cost=cost,
            timestamp=utcnow(),
        )

        # A failed publish leaves the cache untouched; the device retries the sample
        await self._publisher.publish(
            device_topic(device.device_id, self._config),
            {"event": ENERGY_UPDATE_EVENT, "payload": reading.as_payload()},
        )
        self._cache.put(reading)

        logger.debug(
            "Relayed energy sample",
            extra={"device_id": device.device_id, "channel": sample.channel_number, "cost": cost},
        )
        return reading
