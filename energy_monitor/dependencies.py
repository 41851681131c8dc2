"""Shared FastAPI dependencies and the process-wide service singletons."""

from __future__ import annotations

from fastapi import Header

from energy_monitor.core.config import Settings, get_settings, settings
from energy_monitor.db.database import get_session
from energy_monitor.errors import AuthenticationError
from energy_monitor.services.firmware_store import FirmwareStore, build_firmware_store
from energy_monitor.services.ingest_relay import IngestRelay
from energy_monitor.services.liveness_monitor import LivenessMonitor
from energy_monitor.services.reading_cache import ReadingCache
from energy_monitor.services.realtime import CompositePublisher, LocalBus, build_publisher
from energy_monitor.services.reset_quorum import ResetQuorumTracker

reading_cache = ReadingCache(settings.reading_cache_max_entries)
local_bus = LocalBus(settings.realtime_queue_size)
publisher = build_publisher(local_bus, settings)
ingest_relay = IngestRelay(reading_cache, publisher, settings)
reset_tracker = ResetQuorumTracker(publisher, reading_cache, settings)
liveness_monitor = LivenessMonitor(reading_cache, publisher, settings)

_firmware_store: FirmwareStore | None = None


def get_config() -> Settings:
    return get_settings()


def get_reading_cache() -> ReadingCache:
    return reading_cache


def get_local_bus() -> LocalBus:
    return local_bus


def get_publisher() -> CompositePublisher:
    return publisher


def get_ingest_relay() -> IngestRelay:
    return ingest_relay


def get_reset_tracker() -> ResetQuorumTracker:
    return reset_tracker


def get_firmware_store() -> FirmwareStore:
    global _firmware_store
    if _firmware_store is None:
        _firmware_store = build_firmware_store(settings)
    return _firmware_store


async def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity forwarded by the authenticating gateway."""

    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError("Missing X-User-Id header")
    return x_user_id.strip()


__all__ = [
    "get_session",
    "get_config",
    "get_reading_cache",
    "get_local_bus",
    "get_publisher",
    "get_ingest_relay",
    "get_reset_tracker",
    "get_firmware_store",
    "get_current_user_id",
    "reading_cache",
    "local_bus",
    "publisher",
    "liveness_monitor",
]
