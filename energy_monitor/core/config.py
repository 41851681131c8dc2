from __future__ import annotations

from collections.abc import Iterable
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode


def _unique(iterable: Iterable[str | None]) -> list[str]:
    """Return a list of non-empty unique strings preserving order."""

    seen: set[str] = set()
    ordered: list[str] = []
    for value in iterable:
        if not value:
            continue
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


def _split_csv(value: str | list[str] | None) -> list[str]:
    if isinstance(value, str):
        parts = [part.strip() for part in value.replace("\n", ",").split(",")]
        return [part for part in parts if part]
    if isinstance(value, list):
        return [part for part in value if isinstance(part, str) and part]
    return []


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("energy", alias="DB_USER")
    db_password: str = Field("energy", alias="DB_PASSWORD")
    db_name: str = Field("energy_monitor", alias="DB_NAME")
    db_timeout: int = Field(30, alias="DB_TIMEOUT")
    database_url: str | None = Field(None, alias="DATABASE_URL")

    cors_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"],
        alias="CORS_ORIGINS",
    )

    # A channel is online while its latest reading is younger than this
    liveness_timeout_s: float = Field(15.0, alias="LIVENESS_TIMEOUT_S")
    liveness_check_interval_s: float = Field(2.0, alias="LIVENESS_CHECK_INTERVAL_S")

    reset_session_ttl_hours: float = Field(24.0, alias="RESET_SESSION_TTL_HOURS")

    reading_cache_max_entries: int = Field(4096, alias="READING_CACHE_MAX_ENTRIES")
    realtime_topic_prefix: str = Field("device_", alias="REALTIME_TOPIC_PREFIX")
    realtime_queue_size: int = Field(256, alias="REALTIME_QUEUE_SIZE")

    mqtt_enabled: bool = Field(False, alias="MQTT_ENABLED")
    mqtt_host: str | None = Field(None, alias="MQTT_HOST")
    mqtt_port: int = Field(1883, alias="MQTT_PORT")
    mqtt_client_id: str | None = Field(None, alias="MQTT_CLIENT_ID")
    mqtt_username: str | None = Field(None, alias="MQTT_USERNAME")
    mqtt_password: str | None = Field(None, alias="MQTT_PASSWORD")
    mqtt_keepalive: int = Field(60, alias="MQTT_KEEPALIVE")
    mqtt_use_tls: bool = Field(False, alias="MQTT_USE_TLS")
    mqtt_ca_cert: str | None = Field(None, alias="MQTT_CA_CERT")
    mqtt_client_cert: str | None = Field(None, alias="MQTT_CLIENT_CERT")
    mqtt_client_key: str | None = Field(None, alias="MQTT_CLIENT_KEY")
    mqtt_topic_ingest: str | None = Field("energy/ingest", alias="MQTT_TOPIC_INGEST")
    mqtt_topic_prefix: str = Field("energy/device/", alias="MQTT_TOPIC_PREFIX")
    mqtt_additional_topics: Annotated[list[str], NoDecode] = Field(default_factory=list, alias="MQTT_TOPICS")

    firmware_backend: Literal["local", "s3"] = Field("local", alias="FIRMWARE_BACKEND")
    firmware_bucket: str | None = Field(None, alias="FIRMWARE_BUCKET")
    firmware_prefix: str = Field("firmware", alias="FIRMWARE_PREFIX")
    firmware_local_dir: str = Field("./firmware-updates", alias="FIRMWARE_LOCAL_DIR")
    firmware_public_base_url: str | None = Field(None, alias="FIRMWARE_PUBLIC_BASE_URL")
    firmware_url_expiry_s: int = Field(3600, alias="FIRMWARE_URL_EXPIRY_S")
    aws_region: str = Field("us-west-2", alias="AWS_REGION")

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "extra": "ignore",
        "env_nested_delimiter": "__",
        "populate_by_name": True,
    }

    @field_validator("mqtt_additional_topics", "cors_origins", mode="before")
    @classmethod
    def _split_lists(cls, value: str | list[str]) -> list[str]:
        return _split_csv(value)

    @property
    def sqlalchemy_database_uri(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def mqtt_topics(self) -> list[str]:
        """List of topics the ingest consumer should subscribe to."""

        return _unique([self.mqtt_topic_ingest, *self.mqtt_additional_topics])


_settings_instance = None


def get_settings():
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


settings = get_settings()
