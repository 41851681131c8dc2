"""Tests for shared MQTT client construction."""
import os

import paho.mqtt.client as mqtt
import pytest

from energy_monitor.core.config import Settings
from energy_monitor.errors import TransportError
from energy_monitor.services.mqtt import _resolve_tls_file, build_mqtt_client


def test_tls_setting_path_is_used_as_is():
    assert _resolve_tls_file("ca_cert", "/etc/ssl/ca.pem") == "/etc/ssl/ca.pem"
    assert _resolve_tls_file("ca_cert", None) is None


def test_inline_pem_is_written_to_temp_file():
    pem = "-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n"
    path = _resolve_tls_file("ca_cert", pem)
    try:
        assert path.endswith("_ca_cert.pem")
        with open(path) as handle:
            assert handle.read() == pem
    finally:
        os.remove(path)


def test_build_client_requires_host():
    with pytest.raises(TransportError):
        build_mqtt_client(Settings(MQTT_ENABLED=True, MQTT_HOST=None))


def test_build_client_uses_configured_id():
    client = build_mqtt_client(Settings(MQTT_HOST="broker.local", MQTT_CLIENT_ID="backend-1"), role="ingest")
    assert isinstance(client, mqtt.Client)
    assert client._client_id == b"backend-1-ingest"


def test_half_configured_client_certificate_is_rejected():
    config = Settings(MQTT_HOST="broker.local", MQTT_USE_TLS=True, MQTT_CLIENT_CERT="/tmp/cert.pem")
    with pytest.raises(TransportError):
        build_mqtt_client(config)
