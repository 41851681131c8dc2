"""Shared paho-mqtt client setup and the realtime MQTT mirror."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from typing import Any
from uuid import uuid4

import paho.mqtt.client as mqtt

from energy_monitor.core.config import Settings, settings
from energy_monitor.errors import TransportError
from energy_monitor.services.realtime import RealtimePublisher

logger = logging.getLogger(__name__)

PEM_MARKER = "-----BEGIN"


def _resolve_tls_file(kind: str, value: str | None) -> str | None:
    """Return a file path for a TLS setting given either a path or inline PEM content."""

    if not value:
        return None
    if not value.lstrip().startswith(PEM_MARKER):
        return value

    fd, path = tempfile.mkstemp(suffix=f"_{kind}.pem")
    with os.fdopen(fd, "w") as handle:
        handle.write(value)
    logger.info(f"Wrote inline {kind} PEM to temporary file", extra={"path": path})
    return path


def build_mqtt_client(config: Settings | None = None, role: str = "backend") -> mqtt.Client:
    """Create a paho client with credentials, TLS and reconnect limits applied."""

    config = config or settings
    if not config.mqtt_host:
        raise TransportError("MQTT_HOST must be provided when MQTT_ENABLED is true")

    base_id = config.mqtt_client_id or f"energy-monitor-{uuid4().hex[:8]}"
    client = mqtt.Client(
        mqtt.CallbackAPIVersion.VERSION2,
        client_id=f"{base_id}-{role}",
        protocol=mqtt.MQTTv311,
    )
    client.enable_logger(logger=logger)
    client.reconnect_delay_set(min_delay=1, max_delay=60)
    client.max_inflight_messages_set(20)
    client.max_queued_messages_set(200)

    if config.mqtt_username:
        client.username_pw_set(config.mqtt_username, config.mqtt_password)

    if config.mqtt_use_tls:
        ca_certs = _resolve_tls_file("ca_cert", config.mqtt_ca_cert)
        certfile = _resolve_tls_file("client_cert", config.mqtt_client_cert)
        keyfile = _resolve_tls_file("client_key", config.mqtt_client_key)
        if bool(certfile) != bool(keyfile):
            raise TransportError("MQTT client certificate and key must be configured together")
        client.tls_set(ca_certs=ca_certs, certfile=certfile, keyfile=keyfile)

    return client


async def connect_client(client: mqtt.Client, config: Settings | None = None) -> None:
    config = config or settings
    try:
        await asyncio.to_thread(
            client.connect,
            config.mqtt_host,
            config.mqtt_port,
            config.mqtt_keepalive,
        )
    except OSError as exc:  # pragma: no cover - connection failures in prod
        raise TransportError(f"Failed to connect to MQTT broker: {exc}") from exc
    client.loop_start()


def disconnect_client(client: mqtt.Client) -> None:
    try:
        client.loop_stop()
        client.disconnect()
    except Exception:  # pragma: no cover - shutdown path
        logger.exception("Error stopping MQTT client")


class MQTTPublisher(RealtimePublisher):
    """Mirror realtime events to ``MQTT_TOPIC_PREFIX + device_id`` with QoS 1."""

    def __init__(self, config: Settings | None = None, client: mqtt.Client | None = None) -> None:
        self._config = config or settings
        self._client = client
        self._started = False

    def broker_topic(self, topic: str) -> str:
        prefix = self._config.realtime_topic_prefix
        device_id = topic[len(prefix):] if prefix and topic.startswith(prefix) else topic
        return f"{self._config.mqtt_topic_prefix}{device_id}"

    async def start(self) -> None:
        if self._started:
            return
        if self._client is None:
            self._client = build_mqtt_client(self._config, role="publisher")
            self._client.on_connect = self._on_connect
            self._client.on_disconnect = self._on_disconnect
            await connect_client(self._client, self._config)
        self._started = True
        logger.info("MQTT realtime publisher started", extra={"host": self._config.mqtt_host})

    async def stop(self) -> None:
        if not self._started:
            return
        if self._client is not None:
            disconnect_client(self._client)
        self._client = None
        self._started = False

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        if not self._started or self._client is None:
            raise TransportError("MQTT publisher is not connected")
        try:
            message = json.dumps(payload, default=str)
        except (TypeError, ValueError) as exc:
            raise TransportError(f"Realtime payload is not serialisable: {exc}") from exc

        info = self._client.publish(self.broker_topic(topic), message, qos=1)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"MQTT publish failed: {mqtt.error_string(info.rc)}")

    def _on_connect(self, client: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any) -> None:
        if reason_code.is_failure:
            logger.error("MQTT publisher failed to connect", extra={"reason": str(reason_code)})
        else:
            logger.info("MQTT publisher connected")

    def _on_disconnect(
        self, _client: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any
    ) -> None:
        if reason_code.is_failure:
            logger.warning(f"Unexpected MQTT publisher disconnect ({reason_code})")
        else:
            logger.info("MQTT publisher disconnected cleanly")
