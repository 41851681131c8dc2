from hypothesis import given, strategies as st

from energy_monitor.core.config import Settings, _split_csv, _unique


@given(st.lists(st.one_of(st.none(), st.text(min_size=0, max_size=10)), max_size=20))
def test_unique_property(input_list):
    result = _unique(input_list)
    # All elements in result are non-empty strings
    assert all(isinstance(x, str) and x for x in result)
    # Result preserves order of first occurrence
    seen = set()
    expected = []
    for v in input_list:
        if v and v not in seen:
            seen.add(v)
            expected.append(v)
    assert result == expected
    assert len(result) == len(set(result))


@given(st.lists(st.text(alphabet=st.characters(blacklist_characters=",\n", blacklist_categories=("Zs", "Zl", "Zp", "Cc")), min_size=1, max_size=8), max_size=10))
def test_split_csv_roundtrip(parts):
    assert _split_csv(",".join(parts)) == parts


def test_defaults():
    config = Settings()
    assert config.liveness_timeout_s == 15
    assert config.liveness_check_interval_s == 2
    assert config.realtime_topic_prefix == "device_"


def test_mqtt_topics_from_env(monkeypatch):
    monkeypatch.setenv("MQTT_TOPIC_INGEST", "energy/ingest")
    monkeypatch.setenv("MQTT_TOPICS", "energy/extra, energy/ingest ,energy/more")
    config = Settings()
    assert config.mqtt_topics == ["energy/ingest", "energy/extra", "energy/more"]


def test_database_url_override(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///./local.db")
    assert Settings().sqlalchemy_database_uri == "sqlite+aiosqlite:///./local.db"


def test_composed_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    config = Settings(DB_USER="u", DB_PASSWORD="p", DB_HOST="db", DB_PORT=5433, DB_NAME="energy")
    assert config.sqlalchemy_database_uri == "postgresql+asyncpg://u:p@db:5433/energy"
