"""Pytest configuration and shared fixtures for backend tests."""
import os
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set required environment variables for testing
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DB_HOST", "localhost")
os.environ.setdefault("DB_USER", "test_user")
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("DB_NAME", "test_db")
os.environ.setdefault("MQTT_ENABLED", "false")
os.environ.setdefault("FIRMWARE_BACKEND", "local")
os.environ.setdefault("AWS_REGION", "us-west-2")

OWNER = "user-owner"


@pytest_asyncio.fixture
async def test_engine():
    """Create in-memory test database engine."""
    from energy_monitor.models import Base

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def test_session(test_engine):
    """Create test database session."""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with async_session() as session:
        yield session


@pytest.fixture(autouse=True)
def clear_reading_cache():
    """The reading cache is process-wide; start every test empty."""
    from energy_monitor.dependencies import reading_cache

    reading_cache.clear()
    yield
    reading_cache.clear()


@pytest_asyncio.fixture
async def client(test_session):
    """Create test HTTP client with database override."""
    from energy_monitor.main import app
    from energy_monitor.dependencies import get_session

    async def override_get_session():
        yield test_session

    app.dependency_overrides[get_session] = override_get_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def registered_device(client):
    """Register a 4-channel device owned by ``OWNER``."""
    payload = {"device_id": "ESP32_001", "device_name": "Compound meter", "channel_count": 4}
    response = await client.post("/api/devices", json=payload, headers={"X-User-Id": OWNER})
    assert response.status_code == 201
    return response.json()
