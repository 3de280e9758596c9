"""
Integration tests for master data.

Vehicles, drivers, teams, supervisors and products, and the rules that
keep them eligible for trips.
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from dispatch_backend.app.core.clock import utc_today
from dispatch_backend.app.services.audit import get_entity_history


@pytest.mark.asyncio
async def test_vehicle_plate_is_normalized_and_unique(client, fleet):
    vehicles = (await client.get("/v1/catalog/vehicles")).json()
    assert "ABC1234" in [v["plate"] for v in vehicles]

    response = await client.post("/v1/catalog/vehicles", json={"plate": " abc1234 ", "model": "Other"})
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CATALOG_001"


@pytest.mark.asyncio
@pytest.mark.parametrize("plate", ["AB12", "ABC-123", "ABCDEFGHIJK"])
async def test_invalid_plate_rejected(client, plate):
    response = await client.post("/v1/catalog/vehicles", json={"plate": plate, "model": "NPR"})
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_INPUT_004"


@pytest.mark.asyncio
async def test_vehicle_status_transitions(client, fleet):
    url = f"/v1/catalog/vehicles/{fleet['v1']}/status"

    response = await client.patch(url, json={"status": "ON_TRIP"})
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_STATE_001"

    assert (await client.patch(url, json={"status": "MAINTENANCE"})).status_code == 200
    available = (await client.get("/v1/catalog/vehicles", params={"available": True})).json()
    assert fleet["v1"] not in [v["id"] for v in available]

    assert (await client.patch(url, json={"status": "RETIRED"})).status_code == 200
    response = await client.patch(url, json={"status": "AVAILABLE"})
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_retired_vehicle_stays_retired_after_trip(client, fleet, manifest):
    trip = (await client.post("/v1/trips", json={
        "vehicle_id": fleet["v1"], "driver_id": fleet["d1"], "lines": manifest
    })).json()

    response = await client.patch(f"/v1/catalog/vehicles/{fleet['v1']}/status", json={"status": "RETIRED"})
    assert response.status_code == 200

    response = await client.post(f"/v1/trips/{trip['id']}/close", json={"lines": [
        {"line_item_id": item["id"], "closing_quantity": 0} for item in trip["line_items"]
    ]})
    assert response.status_code == 200

    vehicles = (await client.get("/v1/catalog/vehicles")).json()
    assert fleet["v1"] not in [v["id"] for v in vehicles]


@pytest.mark.asyncio
async def test_driver_list_shows_derived_supervisor(client, fleet):
    drivers = {d["id"]: d for d in (await client.get("/v1/catalog/drivers")).json()}

    assert drivers[fleet["d1"]]["team_name"] == "Team North"
    assert drivers[fleet["d1"]]["supervisor_id"] == fleet["s1"]
    assert drivers[fleet["d1"]]["supervisor_name"] == "Sara Supervisor"
    assert drivers[fleet["d2"]]["supervisor_id"] is None

    available = (await client.get("/v1/catalog/drivers", params={"available": True})).json()
    assert [d["id"] for d in available] == [fleet["d1"]]


@pytest.mark.asyncio
async def test_driver_supervisor_follows_team_reassignment(client, fleet):
    response = await client.post("/v1/catalog/supervisors", json={
        "email": "s2@test.com", "username": "supervisor2", "full_name": "Sam Second"
    })
    s2 = response.json()["id"]
    response = await client.post("/v1/catalog/teams", json={"name": "Team South", "supervisor_id": s2})
    t2 = response.json()["id"]

    response = await client.patch(f"/v1/catalog/drivers/{fleet['d2']}/team", json={"team_id": t2})
    assert response.status_code == 200
    assert response.json()["team_id"] == t2

    drivers = {d["id"]: d for d in (await client.get("/v1/catalog/drivers")).json()}
    assert drivers[fleet["d2"]]["supervisor_id"] == s2


@pytest.mark.asyncio
async def test_driver_license_must_be_in_future(client, fleet):
    response = await client.post("/v1/catalog/drivers", json={
        "first_name": "Late",
        "last_name": "Renewal",
        "national_id": "11112222",
        "license_expiry": utc_today().isoformat(),
        "team_id": fleet["t1"],
    })
    assert response.status_code == 422
    assert response.json()["details"]["field"] == "license_expiry"


@pytest.mark.asyncio
async def test_duplicate_national_id_rejected(client, fleet):
    response = await client.post("/v1/catalog/drivers", json={
        "first_name": "Twin",
        "last_name": "Driver",
        "national_id": "12345678",
        "license_expiry": (utc_today() + timedelta(days=10)).isoformat(),
    })
    assert response.status_code == 422
    assert response.json()["details"]["field"] == "national_id"


@pytest.mark.asyncio
async def test_team_requires_known_supervisor(client):
    response = await client.post("/v1/catalog/teams", json={"name": "Orphans", "supervisor_id": 999})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_team_supervisor_reassignment(client, fleet):
    response = await client.post("/v1/catalog/supervisors", json={
        "email": "boss@test.com", "username": "boss", "full_name": "Big Boss", "role": "ADMIN"
    })
    boss = response.json()["id"]

    response = await client.patch(f"/v1/catalog/teams/{fleet['t1']}/supervisor", json={"supervisor_id": boss})
    assert response.status_code == 200
    assert response.json()["supervisor_id"] == boss


@pytest.mark.asyncio
async def test_operator_cannot_be_supervisor(client):
    response = await client.post("/v1/catalog/supervisors", json={
        "email": "op@test.com", "username": "operator", "full_name": "Op", "role": "OPERATOR"
    })
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_product_requires_a_price(client):
    response = await client.post("/v1/catalog/products", json={"name": "Air", "prices": []})
    assert response.status_code == 422
    assert response.json()["details"]["field"] == "prices"


@pytest.mark.asyncio
async def test_product_soft_delete_and_reactivation(client, fleet, db_session):
    url = f"/v1/catalog/products/{fleet['p1']}"

    response = await client.delete(url)
    assert response.status_code == 200
    assert response.json()["is_active"] is False
    assert len(response.json()["prices"]) == 2

    assert (await client.get("/v1/catalog/products")).json() == []
    listed = (await client.get("/v1/catalog/products", params={"include_inactive": True})).json()
    assert [p["id"] for p in listed] == [fleet["p1"]]

    assert (await client.delete(url)).status_code == 409

    response = await client.post(f"{url}/reactivate")
    assert response.status_code == 200
    assert response.json()["is_active"] is True

    history = await get_entity_history(db_session, "product", fleet["p1"])
    assert [entry.action for entry in history] == [
        "PRODUCT_REACTIVATED", "PRODUCT_DEACTIVATED", "PRODUCT_CREATED"
    ]


@pytest.mark.asyncio
async def test_price_tier_value_must_be_positive(client, fleet):
    response = await client.post(f"/v1/catalog/products/{fleet['p1']}/prices", json={
        "label": "free", "value": "0"
    })
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_expired_license_blocks_trips_until_renewed(client, fleet, manifest):
    response = await client.patch(f"/v1/catalog/drivers/{fleet['d1']}/status", json={"status": "LICENSE_EXPIRED"})
    assert response.status_code == 200

    response = await client.post("/v1/trips", json={
        "vehicle_id": fleet["v1"], "driver_id": fleet["d1"], "lines": manifest
    })
    assert response.status_code == 409
    assert response.json()["details"]["resource"] == "driver"

    response = await client.patch(f"/v1/catalog/drivers/{fleet['d1']}/license", json={
        "license_expiry": (utc_today() + timedelta(days=730)).isoformat()
    })
    assert response.status_code == 200
    assert response.json()["status"] == "AVAILABLE"

    response = await client.post("/v1/trips", json={
        "vehicle_id": fleet["v1"], "driver_id": fleet["d1"], "lines": manifest
    })
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_busy_driver_is_managed_by_trips(client, fleet):
    response = await client.patch(f"/v1/catalog/drivers/{fleet['d1']}/status", json={"status": "BUSY"})
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_STATE_001"


@pytest.mark.asyncio
async def test_price_with_more_than_two_decimals_rejected(client, fleet):
    response = await client.post("/v1/catalog/products", json={
        "name": "Sparkling Water", "prices": [{"label": "retail", "value": "12.345"}]
    })
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_INPUT_004"
    assert response.json()["details"]["field"] == "value"

    response = await client.post(f"/v1/catalog/products/{fleet['p1']}/prices", json={
        "label": "promo", "value": "7.255"
    })
    assert response.status_code == 422

    response = await client.patch(f"/v1/catalog/prices/{fleet['wholesale']}", json={"value": "9.999"})
    assert response.status_code == 422

    products = (await client.get("/v1/catalog/products")).json()
    assert [p["name"] for p in products] == ["Bottled Water"]
    assert [price["value"] for price in products[0]["prices"]] == ["10.00", "15.00"]


@pytest.mark.asyncio
async def test_trailing_zeros_are_not_extra_precision(client):
    response = await client.post("/v1/catalog/products", json={
        "name": "Ice", "prices": [{"label": "bag", "value": "3.500"}]
    })
    assert response.status_code == 201


@pytest.mark.asyncio
@pytest.mark.parametrize("url,payload", [
    ("/v1/catalog/vehicles", {"plate": "QWE1234", "model": "X"}),
    ("/v1/catalog/vehicles", {"plate": "QWE1234", "model": "  X  "}),
    ("/v1/catalog/products", {"name": "A", "prices": [{"label": "retail", "value": "1.00"}]}),
    ("/v1/catalog/products", {"name": "  A ", "prices": [{"label": "retail", "value": "1.00"}]}),
    ("/v1/catalog/products", {"name": "Tea", "prices": [{"label": "r", "value": "1.00"}]}),
    ("/v1/catalog/drivers", {
        "first_name": "J", "last_name": "Doe", "national_id": "55556666", "license_expiry": "2999-01-01"
    }),
    ("/v1/catalog/drivers", {
        "first_name": "Jane", "last_name": " D ", "national_id": "55556666", "license_expiry": "2999-01-01"
    }),
])
async def test_short_names_rejected(client, url, payload):
    response = await client.post(url, json=payload)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_vehicle_edit(client, fleet):
    url = f"/v1/catalog/vehicles/{fleet['v1']}"

    response = await client.patch(url, json={"plate": "new1234", "model": "Isuzu NQR"})
    assert response.status_code == 200
    body = response.json()
    assert body["plate"] == "NEW1234"
    assert body["model"] == "Isuzu NQR"
    assert body["status"] == "AVAILABLE"

    response = await client.patch(url, json={"plate": "XYZ9876"})
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CATALOG_001"

    response = await client.patch(url, json={"model": "Hino", "expected_version": body["version"] - 1})
    assert response.status_code == 409
    assert response.json()["retryable"] is True

    history = (await client.get(f"/v1/audit/vehicle/{fleet['v1']}")).json()
    assert [log["action"] for log in history["logs"]] == ["VEHICLE_UPDATED", "VEHICLE_CREATED"]


@pytest.mark.asyncio
async def test_list_teams(client, fleet):
    response = await client.post("/v1/catalog/teams", json={"name": "Alpha Crew", "supervisor_id": fleet["s1"]})
    assert response.status_code == 201

    teams = (await client.get("/v1/catalog/teams")).json()
    assert [team["name"] for team in teams] == ["Alpha Crew", "Team North"]
    assert {team["supervisor_id"] for team in teams} == {fleet["s1"]}


@pytest.mark.asyncio
async def test_price_tier_relabel(client, fleet):
    response = await client.patch(f"/v1/catalog/prices/{fleet['retail']}", json={"label": "street"})
    assert response.status_code == 200
    assert response.json()["label"] == "street"
    assert Decimal(response.json()["value"]) == Decimal("15.00")

    response = await client.patch("/v1/catalog/prices/999", json={"label": "ghost"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_removed_price_tier_cannot_open_trips(client, fleet, manifest):
    response = await client.delete(f"/v1/catalog/prices/{fleet['retail']}")
    assert response.status_code == 200
    assert [price["label"] for price in response.json()["prices"]] == ["wholesale"]

    response = await client.post("/v1/trips", json={
        "vehicle_id": fleet["v1"], "driver_id": fleet["d1"], "lines": manifest
    })
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_TRIP_005"
    assert response.json()["details"]["price_tier_id"] == fleet["retail"]

    # The last tier of a product stays
    response = await client.delete(f"/v1/catalog/prices/{fleet['wholesale']}")
    assert response.status_code == 422
    assert response.json()["details"]["field"] == "prices"

    assert (await client.delete(f"/v1/catalog/prices/{fleet['retail']}")).status_code == 404


@pytest.mark.asyncio
async def test_removing_a_used_tier_keeps_trip_history(client, fleet, manifest):
    trip = (await client.post("/v1/trips", json={
        "vehicle_id": fleet["v1"], "driver_id": fleet["d1"], "lines": manifest
    })).json()

    assert (await client.delete(f"/v1/catalog/prices/{fleet['retail']}")).status_code == 200

    response = await client.post(f"/v1/trips/{trip['id']}/close", json={"lines": [
        {"line_item_id": item["id"], "closing_quantity": quantity}
        for item, quantity in zip(trip["line_items"], (4, 1))
    ]})
    assert response.status_code == 200
    assert Decimal(response.json()["total_revenue"]) == Decimal("220.00")
