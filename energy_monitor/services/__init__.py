"""Service layer (liveness, billing, reset voting, ingest relay, realtime fan-out, OTA)."""

from .ingest_relay import IngestRelay
from .liveness_monitor import LivenessMonitor
from .mqtt_consumer import MQTTConsumerError, MQTTIngestConsumer
from .reading_cache import Reading, ReadingCache
from .realtime import CompositePublisher, LocalBus, RealtimePublisher, build_publisher, device_topic
from .reset_quorum import ResetQuorumTracker, VoteOutcome

__all__ = [
    "IngestRelay",
    "LivenessMonitor",
    "MQTTConsumerError",
    "MQTTIngestConsumer",
    "Reading",
    "ReadingCache",
    "CompositePublisher",
    "LocalBus",
    "RealtimePublisher",
    "build_publisher",
    "device_topic",
    "ResetQuorumTracker",
    "VoteOutcome",
]
