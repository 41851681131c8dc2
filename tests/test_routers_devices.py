"""Tests for device registry endpoints."""
import pytest
from httpx import AsyncClient

OWNER = "user-owner"

OWNER_HEADERS = {"X-User-Id": OWNER}
OTHER_HEADERS = {"X-User-Id": "someone-else"}


@pytest.mark.asyncio
async def test_register_device_creates_channels_and_bill(client: AsyncClient, registered_device):
    assert registered_device["device_id"] == "ESP32_001"
    assert registered_device["owner_id"] == OWNER
    assert [c["channel_number"] for c in registered_device["channels"]] == [1, 2, 3, 4]
    assert [c["custom_name"] for c in registered_device["channels"]] == ["House1", "House2", "House3", "House4"]

    response = await client.get("/api/devices/ESP32_001/bill")
    assert response.status_code == 200
    assert response.json()["total_bill_amount"] == 0
    assert response.json()["billing_period"] == "monthly"


@pytest.mark.asyncio
async def test_register_requires_identity(client: AsyncClient):
    payload = {"device_id": "ESP32_002", "device_name": "Meter", "channel_count": 4}
    response = await client.post("/api/devices", json=payload)
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Missing X-User-Id header"}


@pytest.mark.asyncio
async def test_register_duplicate_conflicts(client: AsyncClient, registered_device):
    payload = {"device_id": "ESP32_001", "device_name": "Again", "channel_count": 4}
    response = await client.post("/api/devices", json=payload, headers=OWNER_HEADERS)
    assert response.status_code == 409
    assert response.json()["success"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize("channel_count", [0, 17])
async def test_register_rejects_bad_channel_count(client: AsyncClient, channel_count):
    payload = {"device_id": "ESP32_003", "device_name": "Meter", "channel_count": channel_count}
    response = await client.post("/api/devices", json=payload, headers=OWNER_HEADERS)
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["details"]


@pytest.mark.asyncio
async def test_list_devices_only_returns_callers(client: AsyncClient, registered_device):
    other = {"device_id": "ESP32_009", "device_name": "Other", "channel_count": 2}
    await client.post("/api/devices", json=other, headers=OTHER_HEADERS)

    response = await client.get("/api/devices", headers=OWNER_HEADERS)
    assert response.status_code == 200
    assert [d["device_id"] for d in response.json()] == ["ESP32_001"]


@pytest.mark.asyncio
async def test_get_unknown_device(client: AsyncClient):
    response = await client.get("/api/devices/nope", headers=OWNER_HEADERS)
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Device nope not found"}


@pytest.mark.asyncio
async def test_rename_device_owner_only(client: AsyncClient, registered_device):
    response = await client.patch(
        "/api/devices/ESP32_001", json={"device_name": "Renamed"}, headers=OTHER_HEADERS
    )
    assert response.status_code == 403

    response = await client.patch(
        "/api/devices/ESP32_001", json={"device_name": "Renamed"}, headers=OWNER_HEADERS
    )
    assert response.status_code == 200
    assert response.json()["device_name"] == "Renamed"


@pytest.mark.asyncio
async def test_rename_channel(client: AsyncClient, registered_device):
    response = await client.patch(
        "/api/devices/ESP32_001/channels/2", json={"custom_name": "Flat B"}, headers=OWNER_HEADERS
    )
    assert response.status_code == 200
    assert response.json() == {"channel_number": 2, "custom_name": "Flat B"}

    response = await client.get("/api/devices/ESP32_001/channels")
    assert [c["custom_name"] for c in response.json()] == ["House1", "Flat B", "House3", "House4"]

    response = await client.patch(
        "/api/devices/ESP32_001/channels/5", json={"custom_name": "Nope"}, headers=OWNER_HEADERS
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_bill(client: AsyncClient, registered_device):
    response = await client.put(
        "/api/devices/ESP32_001/bill",
        json={"total_bill_amount": 4000, "billing_period": "monthly"},
        headers=OWNER_HEADERS,
    )
    assert response.status_code == 200
    assert response.json()["total_bill_amount"] == 4000

    response = await client.put(
        "/api/devices/ESP32_001/bill", json={"total_bill_amount": -1}, headers=OWNER_HEADERS
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_delete_device(client: AsyncClient, registered_device):
    await client.post(
        "/api/esp32/energy",
        json={"device_id": "ESP32_001", "channel_number": 1, "current": 1, "power": 220, "energy_wh": 5},
    )
    await client.post("/api/reset/vote", json={"device_id": "ESP32_001"}, headers=OWNER_HEADERS)

    response = await client.delete("/api/devices/ESP32_001", headers=OTHER_HEADERS)
    assert response.status_code == 403

    response = await client.delete("/api/devices/ESP32_001", headers=OWNER_HEADERS)
    assert response.status_code == 204

    response = await client.get("/api/devices/ESP32_001", headers=OWNER_HEADERS)
    assert response.status_code == 404
    response = await client.get("/api/esp32/registration", params={"device_id": "ESP32_001"})
    assert response.json()["registered"] is False


@pytest.mark.asyncio
async def test_liveness_and_online_stats(client: AsyncClient, registered_device):
    response = await client.get("/api/devices/ESP32_001/liveness")
    assert response.status_code == 200
    body = response.json()
    assert body["online"] is False
    assert body["channels"] == {"1": False, "2": False, "3": False, "4": False}
    assert body["threshold_s"] == 15

    await client.post(
        "/api/esp32/energy",
        json={"device_id": "ESP32_001", "channel_number": 3, "current": 1, "power": 220, "energy_wh": 5},
    )
    body = (await client.get("/api/devices/ESP32_001/liveness")).json()
    assert body["online"] is True
    assert body["channels"]["3"] is True
    assert body["channels"]["1"] is False

    response = await client.get("/api/stats/online", headers=OWNER_HEADERS)
    assert response.json() == {"online_devices": 1, "total_devices": 1}


@pytest.mark.asyncio
async def test_billing_breakdown(client: AsyncClient, registered_device):
    await client.put(
        "/api/devices/ESP32_001/bill",
        json={"total_bill_amount": 4000, "billing_period": "monthly"},
        headers=OWNER_HEADERS,
    )
    for channel in (1, 2, 3, 4):
        await client.post(
            "/api/esp32/energy",
            json={"device_id": "ESP32_001", "channel_number": channel, "current": 1, "power": 220, "energy_wh": 100},
        )

    response = await client.get("/api/devices/ESP32_001/billing")
    assert response.status_code == 200
    body = response.json()
    assert body["total_energy_kwh"] == pytest.approx(0.4)
    assert [c["cost"] for c in body["channels"]] == pytest.approx([1000, 1000, 1000, 1000])
    assert [c["percentage"] for c in body["channels"]] == pytest.approx([25, 25, 25, 25])
    assert body["channels"][0]["custom_name"] == "House1"


@pytest.mark.asyncio
async def test_billing_with_no_energy(client: AsyncClient, registered_device):
    body = (await client.get("/api/devices/ESP32_001/billing")).json()
    assert [c["cost"] for c in body["channels"]] == [0, 0, 0, 0]


@pytest.mark.asyncio
async def test_update_profile(client: AsyncClient):
    response = await client.put("/api/profile", json={"full_name": "Ada"}, headers=OWNER_HEADERS)
    assert response.status_code == 200
    assert response.json() == {"id": OWNER, "full_name": "Ada"}


@pytest.mark.asyncio
@pytest.mark.parametrize("literal", ["1e309", "NaN", "Infinity"])
async def test_update_bill_rejects_non_finite_amount(client: AsyncClient, registered_device, literal):
    response = await client.put(
        "/api/devices/ESP32_001/bill",
        content=f'{{"total_bill_amount": {literal}}}',
        headers={**OWNER_HEADERS, "Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["success"] is False
