"""Tests for the MQTT ingest consumer."""
import json
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

from energy_monitor import crud
from energy_monitor.core.config import Settings
from energy_monitor.services.ingest_relay import IngestRelay
from energy_monitor.services.mqtt_consumer import MQTTConsumerError, MQTTIngestConsumer
from energy_monitor.services.reading_cache import ReadingCache
from energy_monitor.services.realtime import LocalBus


@pytest_asyncio.fixture
async def session_factory(test_session):
    async def _factory():
        yield test_session
    return _factory


@pytest.fixture
def mock_config():
    config = Mock(spec=Settings)
    config.mqtt_enabled = True
    config.mqtt_topics = ["energy/ingest"]
    config.mqtt_client_id = "test"
    config.mqtt_host = "broker.local"
    config.realtime_topic_prefix = "device_"
    return config


@pytest.fixture
def cache():
    return ReadingCache()


@pytest.fixture
def consumer(cache, mock_config, session_factory):
    relay = IngestRelay(cache, LocalBus(), config=mock_config)
    return MQTTIngestConsumer(relay, config=mock_config, session_factory=session_factory)


@pytest.mark.asyncio
async def test_disabled_consumer_does_not_start(cache, session_factory):
    config = Mock(spec=Settings)
    config.mqtt_enabled = False
    consumer = MQTTIngestConsumer(IngestRelay(cache, LocalBus()), config=config, session_factory=session_factory)
    await consumer.start()
    assert consumer._started is False


@pytest.mark.asyncio
async def test_start_requires_topics(cache, session_factory, mock_config):
    mock_config.mqtt_topics = []
    consumer = MQTTIngestConsumer(IngestRelay(cache, LocalBus()), config=mock_config, session_factory=session_factory)
    with pytest.raises(MQTTConsumerError):
        await consumer.start()


@pytest.mark.asyncio
async def test_valid_sample_is_relayed(consumer, cache, test_session):
    await crud.create_device(
        test_session, device_id="ESP32_001", device_name="Meter", channel_count=4, owner_id="owner"
    )
    payload = {"device_id": "ESP32_001", "channel_number": 2, "current": 1.5, "power": 330, "energy_wh": 42}
    await consumer.handle_message("energy/ingest", json.dumps(payload).encode())
    reading = cache.get("ESP32_001", 2)
    assert reading is not None
    assert reading.energy_wh == 42


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        b"\xff\xfe",
        b"not json",
        b"[1, 2, 3]",
        json.dumps({"device_id": "ESP32_001"}).encode(),
        json.dumps({"device_id": "ghost", "channel_number": 1, "current": 1, "power": 1, "energy_wh": 1}).encode(),
    ],
)
async def test_bad_messages_are_dropped(consumer, cache, payload):
    await consumer.handle_message("energy/ingest", payload)
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_out_of_range_channel_is_dropped(consumer, cache, test_session):
    await crud.create_device(
        test_session, device_id="ESP32_001", device_name="Meter", channel_count=4, owner_id="owner"
    )
    payload = {"device_id": "ESP32_001", "channel_number": 9, "current": 1, "power": 1, "energy_wh": 1}
    await consumer.handle_message("energy/ingest", json.dumps(payload).encode())
    assert len(cache) == 0
