"""Tests for the liveness monitor service."""
import asyncio
from datetime import datetime, timedelta, UTC
from unittest.mock import AsyncMock, Mock

import pytest

from energy_monitor.core.config import Settings
from energy_monitor.errors import TransportError
from energy_monitor.services.liveness_monitor import LivenessMonitor
from energy_monitor.services.reading_cache import Reading, ReadingCache
from energy_monitor.services.realtime import LocalBus

NOW = datetime(2026, 4, 1, 8, 0, 0, tzinfo=UTC)


@pytest.fixture
def mock_config():
    config = Mock(spec=Settings)
    config.liveness_timeout_s = 15
    config.liveness_check_interval_s = 0.05
    config.realtime_topic_prefix = "device_"
    return config


def _reading(channel, at):
    return Reading(
        device_id="ESP32_001",
        channel_number=channel,
        current=1.0,
        power=220.0,
        energy_wh=5.0,
        cost=0.0,
        timestamp=at,
    )


@pytest.mark.asyncio
async def test_monitor_init(mock_config):
    monitor = LivenessMonitor(ReadingCache(), LocalBus(), config=mock_config)
    assert monitor._started is False
    assert monitor._timeout == 15
    assert monitor._check_interval == 0.05


@pytest.mark.asyncio
async def test_monitor_start_stop_idempotent(mock_config):
    monitor = LivenessMonitor(ReadingCache(), LocalBus(), config=mock_config)
    try:
        await monitor.start()
        task = monitor._monitor_task
        await monitor.start()
        assert monitor._monitor_task is task
        await asyncio.sleep(0.1)
        assert not task.done()
    finally:
        await monitor.stop()
    assert monitor._started is False
    assert monitor._monitor_task is None
    await monitor.stop()


@pytest.mark.asyncio
async def test_channel_ages_out_without_new_reading(mock_config):
    cache = ReadingCache()
    bus = LocalBus()
    monitor = LivenessMonitor(cache, bus, config=mock_config)
    cache.put(_reading(1, NOW))

    async with bus.subscribe("device_ESP32_001") as queue:
        assert await monitor.check_once(NOW + timedelta(seconds=1)) == {"ESP32_001"}
        online_event = queue.get_nowait()
        assert online_event["event"] == "status_update"
        assert online_event["payload"]["online"] is True

        # Still fresh: no transition, no event
        assert await monitor.check_once(NOW + timedelta(seconds=10)) == set()
        assert queue.empty()

        assert await monitor.check_once(NOW + timedelta(seconds=15)) == {"ESP32_001"}
        offline_event = queue.get_nowait()
        assert offline_event["payload"]["online"] is False
        assert offline_event["payload"]["channels"] == {1: False}


@pytest.mark.asyncio
async def test_evicted_channel_counts_as_offline(mock_config):
    cache = ReadingCache()
    monitor = LivenessMonitor(cache, LocalBus(), config=mock_config)
    cache.put(_reading(2, NOW))
    await monitor.check_once(NOW)
    cache.evict_device("ESP32_001")
    assert await monitor.check_once(NOW) == {"ESP32_001"}


@pytest.mark.asyncio
async def test_publish_failure_is_logged_not_raised(mock_config):
    cache = ReadingCache()
    publisher = Mock()
    publisher.publish = AsyncMock(side_effect=TransportError("down"))
    monitor = LivenessMonitor(cache, publisher, config=mock_config)
    cache.put(_reading(1, NOW))
    assert await monitor.check_once(NOW) == {"ESP32_001"}
    publisher.publish.assert_awaited_once()


@pytest.mark.asyncio
async def test_background_loop_publishes_transitions(mock_config):
    cache = ReadingCache()
    bus = LocalBus()
    monitor = LivenessMonitor(cache, bus, config=mock_config)
    cache.put(_reading(1, datetime.now(UTC)))
    async with bus.subscribe("device_ESP32_001") as queue:
        await monitor.start()
        try:
            event = await asyncio.wait_for(queue.get(), 2)
        finally:
            await monitor.stop()
    assert event["payload"]["online"] is True
