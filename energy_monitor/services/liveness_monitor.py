"""
Liveness Monitor

Re-evaluates channel liveness on a fixed tick so channels age out even when
no new reading arrives, and announces online/offline transitions on the
device topic.
"""
import asyncio
import logging
from datetime import datetime

from energy_monitor.core.config import Settings, settings
from energy_monitor.core.timeutils import utcnow
from energy_monitor.errors import TransportError
from energy_monitor.services.liveness import LivenessSnapshot, evaluate
from energy_monitor.services.reading_cache import ReadingCache, ReadingKey
from energy_monitor.services.realtime import RealtimePublisher, device_topic

logger = logging.getLogger(__name__)

STATUS_UPDATE_EVENT = "status_update"


class LivenessMonitor:
    def __init__(
        self,
        cache: ReadingCache,
        publisher: RealtimePublisher,
        config: Settings | None = None,
    ) -> None:
        self._cache = cache
        self._publisher = publisher
        self._config = config or settings
        self._monitor_task: asyncio.Task | None = None
        self._started = False
        self._previous: dict[ReadingKey, bool] = {}

        self._timeout = float(self._config.liveness_timeout_s)
        self._check_interval = float(self._config.liveness_check_interval_s)

    @property
    def running(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Start the liveness monitor."""
        if self._started:
            logger.warning("Liveness monitor already started")
            return

        self._started = True
        logger.info(
            f"Starting liveness monitor "
            f"(timeout: {self._timeout}s, check interval: {self._check_interval}s)"
        )
        self._monitor_task = asyncio.create_task(self._monitor_liveness())

    async def stop(self) -> None:
        """Stop the liveness monitor."""
        if not self._started:
            return

        logger.info("Stopping liveness monitor")
        self._started = False

        if self._monitor_task:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None

    async def _monitor_liveness(self) -> None:
        while self._started:
            try:
                await asyncio.sleep(self._check_interval)
                await self.check_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in liveness monitoring loop: {e}", exc_info=True)

    async def check_once(self, now: datetime | None = None) -> set[str]:
        """Evaluate the cache once and publish changes. Returns the devices that changed."""

        snapshot = evaluate(self._cache.snapshot(), now or utcnow(), self._timeout)
        current = dict(snapshot.channels)

        changed_devices: set[str] = set()
        for key in set(self._previous) | set(current):
            before = self._previous.get(key, False)
            after = current.get(key, False)
            if before == after:
                continue
            device_id, channel = key
            changed_devices.add(device_id)
            logger.info(
                f"Channel {channel} of {device_id} is now {'online' if after else 'offline'}",
                extra={"device_id": device_id, "channel": channel},
            )

        self._previous = {key: online for key, online in current.items() if online}

        for device_id in sorted(changed_devices):
            await self._announce(device_id, snapshot)
        return changed_devices

    async def _announce(self, device_id: str, snapshot: LivenessSnapshot) -> None:
        payload = {
            "event": STATUS_UPDATE_EVENT,
            "payload": {
                "device_id": device_id,
                "online": snapshot.device_online(device_id),
                "channels": snapshot.device_channels(device_id),
                "evaluated_at": snapshot.evaluated_at.isoformat(),
            },
        }
        try:
            await self._publisher.publish(device_topic(device_id, self._config), payload)
        except TransportError as exc:
            logger.error(f"Failed to publish liveness update for {device_id}: {exc}")
