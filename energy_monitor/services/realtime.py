"""
Realtime fan-out

Every ingested reading, liveness change and reset update is published on the
device topic (``device_<id>``). The in-process ``LocalBus`` feeds WebSocket
subscribers; ``MQTTPublisher`` optionally mirrors the same events to a broker.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable

from energy_monitor.core.config import Settings, settings
from energy_monitor.errors import TransportError

logger = logging.getLogger(__name__)


def device_topic(device_id: str, config: Settings | None = None) -> str:
    prefix = (config or settings).realtime_topic_prefix
    return f"{prefix}{device_id}"


class RealtimePublisher:
    """Interface shared by realtime backends."""

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        raise NotImplementedError


class LocalBus(RealtimePublisher):
    """In-process publish/subscribe with one bounded queue per subscriber."""

    def __init__(self, queue_size: int = 256) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[str, set[asyncio.Queue[dict[str, Any]]]] = defaultdict(set)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        for queue in list(self._subscribers.get(topic, ())):
            if queue.full():
                # Slow subscriber: drop its oldest event
                with contextlib.suppress(asyncio.QueueEmpty):
                    queue.get_nowait()
                logger.warning("Dropping realtime event for slow subscriber", extra={"topic": topic})
            queue.put_nowait(payload)

    @asynccontextmanager
    async def subscribe(self, topic: str) -> AsyncIterator[asyncio.Queue[dict[str, Any]]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers[topic].add(queue)
        logger.debug("Realtime subscriber added", extra={"topic": topic})
        try:
            yield queue
        finally:
            subscribers = self._subscribers.get(topic)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._subscribers[topic]
            logger.debug("Realtime subscriber removed", extra={"topic": topic})


class CompositePublisher(RealtimePublisher):
    """Publish every event to each configured backend."""

    def __init__(self, publishers: Iterable[RealtimePublisher]) -> None:
        self._publishers = list(publishers)

    @property
    def publishers(self) -> list[RealtimePublisher]:
        return list(self._publishers)

    async def start(self) -> None:
        for publisher in self._publishers:
            await publisher.start()

    async def stop(self) -> None:
        for publisher in reversed(self._publishers):
            try:
                await publisher.stop()
            except Exception:
                logger.exception("Error stopping realtime publisher", extra={"publisher": type(publisher).__name__})

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        failures: list[str] = []
        for publisher in self._publishers:
            try:
                await publisher.publish(topic, payload)
            except TransportError as exc:
                logger.error(f"Realtime publish failed on {type(publisher).__name__}: {exc}", extra={"topic": topic})
                failures.append(type(publisher).__name__)
        if failures:
            raise TransportError(f"Failed to publish realtime event via {', '.join(failures)}")


def build_publisher(local_bus: LocalBus, config: Settings | None = None) -> CompositePublisher:
    config = config or settings
    publishers: list[RealtimePublisher] = [local_bus]
    if config.mqtt_enabled:
        from energy_monitor.services.mqtt import MQTTPublisher

        publishers.append(MQTTPublisher(config))
    return CompositePublisher(publishers)
