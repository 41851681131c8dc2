"""
Liveness evaluation

A channel is online while its latest reading is younger than the staleness
threshold. Nothing is stored: the snapshot is recomputed from the readings
every time it is needed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable

from energy_monitor.core.timeutils import as_utc
from energy_monitor.services.reading_cache import Reading, ReadingKey


def is_online(timestamp: datetime, now: datetime, threshold: timedelta | float) -> bool:
    """Return ``True`` when ``now - timestamp`` is strictly below ``threshold``."""

    if not isinstance(threshold, timedelta):
        threshold = timedelta(seconds=threshold)
    return as_utc(now) - as_utc(timestamp) < threshold


@dataclass(slots=True)
class LivenessSnapshot:
    evaluated_at: datetime
    threshold_s: float
    channels: dict[ReadingKey, bool] = field(default_factory=dict)

    def channel_online(self, device_id: str, channel_number: int) -> bool:
        return self.channels.get((device_id, channel_number), False)

    def device_online(self, device_id: str) -> bool:
        return any(online for (device, _), online in self.channels.items() if device == device_id)

    def device_channels(self, device_id: str, channel_count: int | None = None) -> dict[int, bool]:
        """Channel states for one device; with ``channel_count`` every channel 1..N is present."""

        if channel_count is not None:
            return {n: self.channel_online(device_id, n) for n in range(1, channel_count + 1)}
        return {
            channel: online
            for (device, channel), online in sorted(self.channels.items())
            if device == device_id
        }

    def online_device_count(self, device_ids: Iterable[str]) -> int:
        return sum(1 for device_id in set(device_ids) if self.device_online(device_id))

    def as_dict(self) -> dict[str, dict[int, bool]]:
        result: dict[str, dict[int, bool]] = {}
        for (device_id, channel), online in sorted(self.channels.items()):
            result.setdefault(device_id, {})[channel] = online
        return result


def evaluate(
    readings: Iterable[Reading],
    now: datetime,
    threshold: timedelta | float,
) -> LivenessSnapshot:
    if not isinstance(threshold, timedelta):
        threshold = timedelta(seconds=threshold)

    latest: dict[ReadingKey, Reading] = {}
    for reading in readings:
        current = latest.get(reading.key)
        if current is None or reading.timestamp >= current.timestamp:
            latest[reading.key] = reading

    return LivenessSnapshot(
        evaluated_at=now,
        threshold_s=threshold.total_seconds(),
        channels={key: is_online(reading.timestamp, now, threshold) for key, reading in latest.items()},
    )
