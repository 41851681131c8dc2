"""Tests for the bounded reading cache."""
from datetime import datetime, timedelta, UTC

import pytest

from energy_monitor.services.reading_cache import Reading, ReadingCache

T0 = datetime(2026, 2, 1, tzinfo=UTC)


def _reading(device_id="dev", channel=1, energy_wh=1.0, offset_s=0):
    return Reading(
        device_id=device_id,
        channel_number=channel,
        current=1.0,
        power=230.0,
        energy_wh=energy_wh,
        cost=0.0,
        timestamp=T0 + timedelta(seconds=offset_s),
    )


def test_put_keeps_latest_per_channel():
    cache = ReadingCache(10)
    assert cache.put(_reading(energy_wh=1.0, offset_s=0))
    assert cache.put(_reading(energy_wh=2.0, offset_s=5))
    assert len(cache) == 1
    assert cache.get("dev", 1).energy_wh == 2.0


def test_older_reading_is_ignored():
    cache = ReadingCache(10)
    cache.put(_reading(energy_wh=2.0, offset_s=5))
    assert cache.put(_reading(energy_wh=1.0, offset_s=0)) is False
    assert cache.get("dev", 1).energy_wh == 2.0


def test_equal_timestamp_replaces():
    cache = ReadingCache(10)
    cache.put(_reading(energy_wh=1.0))
    assert cache.put(_reading(energy_wh=3.0))
    assert cache.get("dev", 1).energy_wh == 3.0


def test_least_recently_updated_entry_is_evicted():
    cache = ReadingCache(2)
    cache.put(_reading(channel=1))
    cache.put(_reading(channel=2))
    cache.put(_reading(channel=1, offset_s=1))
    cache.put(_reading(channel=3))
    assert len(cache) == 2
    assert cache.get("dev", 2) is None
    assert cache.get("dev", 1) is not None
    assert cache.get("dev", 3) is not None


def test_for_device_and_channel_energies():
    cache = ReadingCache(10)
    cache.put(_reading(channel=2, energy_wh=20.0))
    cache.put(_reading(channel=1, energy_wh=10.0))
    cache.put(_reading(device_id="other", channel=1, energy_wh=99.0))
    assert [r.channel_number for r in cache.for_device("dev")] == [1, 2]
    assert cache.channel_energies("dev") == {1: 10.0, 2: 20.0}
    assert cache.device_ids() == {"dev", "other"}


def test_evict_device_removes_only_that_device():
    cache = ReadingCache(10)
    cache.put(_reading(channel=1))
    cache.put(_reading(channel=2))
    cache.put(_reading(device_id="other"))
    assert cache.evict_device("dev") == 2
    assert cache.for_device("dev") == []
    assert len(cache) == 1


def test_payload_serialises_timestamp():
    payload = _reading().as_payload()
    assert payload["timestamp"] == T0.isoformat()
    assert payload["device_id"] == "dev"


def test_rejects_non_positive_bound():
    with pytest.raises(ValueError):
        ReadingCache(0)
