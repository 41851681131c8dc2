"""Tests for the realtime bus and publishers."""
import asyncio
from unittest.mock import AsyncMock, MagicMock, Mock

import paho.mqtt.client as mqtt
import pytest

from energy_monitor.core.config import Settings
from energy_monitor.errors import TransportError
from energy_monitor.services.mqtt import MQTTPublisher
from energy_monitor.services.realtime import (
    CompositePublisher,
    LocalBus,
    RealtimePublisher,
    build_publisher,
    device_topic,
)


def test_device_topic_uses_prefix():
    config = Settings(REALTIME_TOPIC_PREFIX="device_")
    assert device_topic("ESP32_001", config) == "device_ESP32_001"


@pytest.mark.asyncio
async def test_local_bus_delivers_to_topic_subscribers_only():
    bus = LocalBus(queue_size=8)
    async with bus.subscribe("device_a") as queue_a, bus.subscribe("device_b") as queue_b:
        await bus.publish("device_a", {"event": "energy_update", "n": 1})
        assert await asyncio.wait_for(queue_a.get(), 1) == {"event": "energy_update", "n": 1}
        assert queue_b.empty()
    assert bus.subscriber_count("device_a") == 0


@pytest.mark.asyncio
async def test_local_bus_drops_oldest_for_slow_subscriber():
    bus = LocalBus(queue_size=2)
    async with bus.subscribe("t") as queue:
        for n in range(3):
            await bus.publish("t", {"n": n})
        assert [queue.get_nowait()["n"] for _ in range(queue.qsize())] == [1, 2]


@pytest.mark.asyncio
async def test_publish_without_subscribers_is_noop():
    bus = LocalBus()
    await bus.publish("nobody", {"n": 1})
    assert bus.subscriber_count("nobody") == 0


@pytest.mark.asyncio
async def test_composite_publishes_to_all_and_reports_failures():
    healthy = Mock(spec=RealtimePublisher)
    healthy.publish = AsyncMock()
    broken = Mock(spec=RealtimePublisher)
    broken.publish = AsyncMock(side_effect=TransportError("broker down"))

    composite = CompositePublisher([healthy, broken])
    with pytest.raises(TransportError):
        await composite.publish("device_x", {"event": "energy_update"})
    healthy.publish.assert_awaited_once_with("device_x", {"event": "energy_update"})


def test_build_publisher_without_mqtt_uses_local_bus_only():
    bus = LocalBus()
    publisher = build_publisher(bus, Settings(MQTT_ENABLED=False))
    assert publisher.publishers == [bus]


def test_build_publisher_with_mqtt_adds_mirror():
    bus = LocalBus()
    publisher = build_publisher(bus, Settings(MQTT_ENABLED=True, MQTT_HOST="broker.local"))
    assert len(publisher.publishers) == 2
    assert isinstance(publisher.publishers[1], MQTTPublisher)


@pytest.mark.asyncio
async def test_mqtt_publisher_maps_topic_and_uses_qos1():
    config = Settings(MQTT_TOPIC_PREFIX="energy/device/", REALTIME_TOPIC_PREFIX="device_")
    client = MagicMock()
    client.publish.return_value = Mock(rc=mqtt.MQTT_ERR_SUCCESS)
    publisher = MQTTPublisher(config, client=client)
    await publisher.start()

    await publisher.publish("device_ESP32_001", {"event": "energy_update"})

    topic, message = client.publish.call_args.args
    assert topic == "energy/device/ESP32_001"
    assert '"energy_update"' in message
    assert client.publish.call_args.kwargs["qos"] == 1


@pytest.mark.asyncio
async def test_mqtt_publisher_failure_raises_transport_error():
    client = MagicMock()
    client.publish.return_value = Mock(rc=mqtt.MQTT_ERR_NO_CONN)
    publisher = MQTTPublisher(Settings(), client=client)
    await publisher.start()
    with pytest.raises(TransportError):
        await publisher.publish("device_x", {"event": "energy_update"})


@pytest.mark.asyncio
async def test_mqtt_publisher_not_started_raises():
    publisher = MQTTPublisher(Settings(), client=MagicMock())
    with pytest.raises(TransportError):
        await publisher.publish("device_x", {})
