from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable

import paho.mqtt.client as mqtt
from paho.mqtt.client import MQTTMessage
from pydantic import ValidationError as PydanticValidationError

from energy_monitor.core.config import Settings, settings
from energy_monitor.errors import EnergyMonitorError, TransportError
from energy_monitor.schemas.esp32 import EnergySample
from energy_monitor.services.ingest_relay import IngestRelay
from energy_monitor.services.mqtt import build_mqtt_client, connect_client, disconnect_client

logger = logging.getLogger(__name__)


class MQTTConsumerError(RuntimeError):
    """Raised when the MQTT consumer cannot be started."""


SessionFactory = Callable[[], AsyncIterator[Any]]


@dataclass(slots=True)
class _QueuedMessage:
    topic: str
    payload: bytes


class MQTTIngestConsumer:
    """Background task that feeds energy samples published over MQTT into the ingest relay."""

    def __init__(
        self,
        relay: IngestRelay,
        config: Settings | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._relay = relay
        self._config = config or settings
        if session_factory is None:
            from energy_monitor.dependencies import get_session

            self._session_factory = get_session
        else:
            self._session_factory = session_factory

        self._queue: asyncio.Queue[_QueuedMessage] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._worker: asyncio.Task[None] | None = None
        self._client: mqtt.Client | None = None
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        if not self._config.mqtt_enabled:
            logger.info("MQTT ingest consumer disabled via configuration")
            return
        topics = self._config.mqtt_topics
        if not topics:
            raise MQTTConsumerError("At least one MQTT topic must be configured")

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._process_queue())

        try:
            self._client = build_mqtt_client(self._config, role="ingest")
            self._client.on_connect = self._on_connect
            self._client.on_disconnect = self._on_disconnect
            self._client.on_message = self._on_message
            await connect_client(self._client, self._config)
        except TransportError as exc:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
            raise MQTTConsumerError(str(exc)) from exc

        self._started = True
        logger.info(
            "Starting MQTT ingest consumer",
            extra={"client_id": self._config.mqtt_client_id, "host": self._config.mqtt_host, "topics": topics},
        )

    async def stop(self) -> None:
        if not self._started:
            return
        if self._client:
            disconnect_client(self._client)
        if self._worker:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
        self._worker = None
        self._client = None
        self._queue = None
        self._started = False

    def _on_connect(self, client: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any) -> None:
        if reason_code.is_failure:
            logger.error("MQTT ingest client failed to connect", extra={"reason": str(reason_code)})
            return
        for topic in self._config.mqtt_topics:
            client.subscribe(topic, qos=1)
        logger.info("MQTT ingest client subscribed", extra={"topics": self._config.mqtt_topics})

    def _on_disconnect(
        self, _client: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any
    ) -> None:
        if reason_code.is_failure:
            logger.warning(f"Unexpected MQTT disconnect ({reason_code})")
        else:
            logger.info("MQTT ingest client disconnected cleanly")

    def _on_message(self, _client: mqtt.Client, _userdata: Any, msg: MQTTMessage) -> None:
        if not self._queue or not self._loop:
            logger.warning("Received MQTT message before consumer initialisation")
            return
        payload = msg.payload or b""
        asyncio.run_coroutine_threadsafe(
            self._queue.put(_QueuedMessage(topic=msg.topic, payload=payload)),
            self._loop,
        )

    async def handle_message(self, topic: str, payload: bytes) -> None:
        try:
            decoded = payload.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning(
                "Received non-UTF8 payload",
                extra={"topic": topic, "payload_preview": payload[:100]},
            )
            return

        try:
            data = json.loads(decoded)
        except json.JSONDecodeError as e:
            logger.warning(
                "Discarding invalid JSON payload",
                extra={"topic": topic, "error": str(e), "payload_preview": decoded[:200]},
            )
            return

        if not isinstance(data, dict):
            logger.warning("Payload is not a JSON object", extra={"topic": topic, "type": type(data).__name__})
            return

        try:
            sample = EnergySample.model_validate(data)
        except PydanticValidationError as e:
            logger.warning("Discarding invalid energy sample", extra={"topic": topic, "error": str(e)})
            return

        try:
            async with self._session_scope() as session:
                await self._relay.ingest(session, sample)
        except EnergyMonitorError as e:
            logger.warning(
                f"Energy sample rejected: {e.message}",
                extra={"topic": topic, "device_id": sample.device_id, "channel": sample.channel_number},
            )

    async def _process_queue(self) -> None:
        assert self._queue is not None
        while True:
            message = await self._queue.get()
            try:
                await self.handle_message(message.topic, message.payload)
            except Exception as e:
                logger.exception(
                    "Failed to process MQTT message",
                    extra={"topic": message.topic, "payload_size": len(message.payload), "error": str(e)},
                )
            finally:
                self._queue.task_done()

    @asynccontextmanager
    async def _session_scope(self):
        generator = self._session_factory()
        session = await generator.__anext__()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await generator.aclose()
