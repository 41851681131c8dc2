"""
Reading cache

Latest reading per (device, channel). Readings are broadcast to dashboards
and kept here only as long as they are needed for liveness and billing;
there is no durable history.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Iterable

logger = logging.getLogger(__name__)

ReadingKey = tuple[str, int]


@dataclass(slots=True, frozen=True)
class Reading:
    device_id: str
    channel_number: int
    current: float
    power: float
    energy_wh: float
    cost: float
    timestamp: datetime

    @property
    def key(self) -> ReadingKey:
        return (self.device_id, self.channel_number)

    def as_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.isoformat()
        return payload


class ReadingCache:
    """Bounded LRU map of the newest reading for each channel."""

    def __init__(self, max_entries: int = 4096) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self._max_entries = max_entries
        self._entries: OrderedDict[ReadingKey, Reading] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def put(self, reading: Reading) -> bool:
        """Store ``reading`` unless a newer one is already cached.

        Returns ``True`` when the reading was stored.
        """

        current = self._entries.get(reading.key)
        if current is not None and reading.timestamp < current.timestamp:
            logger.debug(
                "Ignoring out-of-order reading",
                extra={"device_id": reading.device_id, "channel": reading.channel_number},
            )
            return False

        self._entries[reading.key] = reading
        self._entries.move_to_end(reading.key)
        while len(self._entries) > self._max_entries:
            evicted_key, _ = self._entries.popitem(last=False)
            logger.debug("Evicted reading", extra={"device_id": evicted_key[0], "channel": evicted_key[1]})
        return True

    def get(self, device_id: str, channel_number: int) -> Reading | None:
        return self._entries.get((device_id, channel_number))

    def for_device(self, device_id: str) -> list[Reading]:
        readings = [reading for key, reading in self._entries.items() if key[0] == device_id]
        return sorted(readings, key=lambda reading: reading.channel_number)

    def snapshot(self) -> list[Reading]:
        return list(self._entries.values())

    def channel_energies(self, device_id: str) -> dict[int, float]:
        return {reading.channel_number: reading.energy_wh for reading in self.for_device(device_id)}

    def device_ids(self) -> set[str]:
        return {key[0] for key in self._entries}

    def evict_device(self, device_id: str) -> int:
        keys = [key for key in self._entries if key[0] == device_id]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def extend(self, readings: Iterable[Reading]) -> None:
        for reading in readings:
            self.put(reading)

    def clear(self) -> None:
        self._entries.clear()
