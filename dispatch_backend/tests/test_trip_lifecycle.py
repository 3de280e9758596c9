"""
Integration tests for the trip lifecycle.

Opening and closing trips through the API, including rejected requests
that must leave no trace.
"""

import pytest
from decimal import Decimal
from sqlalchemy import select, func

from dispatch_backend.app.domain.trips.trip_builder import CargoLine
from dispatch_backend.app.models.audit_log import AuditLog
from dispatch_backend.app.models.resource_lock import ResourceLock
from dispatch_backend.app.models.trip import Trip
from dispatch_backend.app.services import trip_store
from dispatch_backend.app.services.trip_lifecycle import TripLifecycleService


async def open_reference_trip(client, fleet, manifest):
    response = await client.post("/v1/trips", json={
        "vehicle_id": fleet["v1"],
        "driver_id": fleet["d1"],
        "lines": manifest,
    })
    assert response.status_code == 201, response.text
    return response.json()


def closing_for(trip, *quantities):
    return {
        "lines": [
            {"line_item_id": item["id"], "closing_quantity": quantity}
            for item, quantity in zip(trip["line_items"], quantities)
        ]
    }


async def resource_status(client, kind, resource_id):
    response = await client.get(f"/v1/catalog/{kind}")
    return next(r["status"] for r in response.json() if r["id"] == resource_id)


@pytest.mark.asyncio
async def test_open_trip(client, fleet, manifest):
    trip = await open_reference_trip(client, fleet, manifest)

    assert trip["status"] == "IN_PROGRESS"
    assert trip["supervisor_id"] == fleet["s1"]
    assert trip["team_id"] == fleet["t1"]
    assert trip["finished_at"] is None
    assert trip["total_revenue"] is None
    assert [item["opening_quantity"] for item in trip["line_items"]] == [20, 5]
    assert [Decimal(item["unit_price"]) for item in trip["line_items"]] == [Decimal("10.00"), Decimal("15.00")]
    assert all(item["closing_quantity"] is None for item in trip["line_items"])

    assert await resource_status(client, "vehicles", fleet["v1"]) == "ON_TRIP"
    assert await resource_status(client, "drivers", fleet["d1"]) == "BUSY"


@pytest.mark.asyncio
async def test_open_and_close_reference_trip(client, fleet, manifest):
    trip = await open_reference_trip(client, fleet, manifest)

    response = await client.post(f"/v1/trips/{trip['id']}/close", json=closing_for(trip, 4, 1))
    assert response.status_code == 200, response.text
    closed = response.json()

    assert closed["status"] == "FINISHED"
    assert closed["finished_at"] is not None
    assert [item["units_sold"] for item in closed["line_items"]] == [16, 4]
    assert [Decimal(item["revenue"]) for item in closed["line_items"]] == [Decimal("160.00"), Decimal("60.00")]
    assert Decimal(closed["total_revenue"]) == Decimal("220.00")

    assert await resource_status(client, "vehicles", fleet["v1"]) == "AVAILABLE"
    assert await resource_status(client, "drivers", fleet["d1"]) == "AVAILABLE"


@pytest.mark.asyncio
async def test_closed_trip_releases_resources_for_next_trip(client, fleet, manifest):
    trip = await open_reference_trip(client, fleet, manifest)
    await client.post(f"/v1/trips/{trip['id']}/close", json=closing_for(trip, 4, 1))

    second = await open_reference_trip(client, fleet, manifest)
    assert second["id"] != trip["id"]


@pytest.mark.asyncio
async def test_driver_without_team_cannot_open(client, fleet, manifest, db_session):
    response = await client.post("/v1/trips", json={
        "vehicle_id": fleet["v1"],
        "driver_id": fleet["d2"],
        "lines": manifest,
    })

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_TRIP_007"
    assert (await db_session.execute(select(func.count(Trip.id)))).scalar() == 0
    assert await resource_status(client, "vehicles", fleet["v1"]) == "AVAILABLE"


@pytest.mark.asyncio
async def test_double_close_is_rejected_and_keeps_first_result(client, fleet, manifest):
    trip = await open_reference_trip(client, fleet, manifest)
    first = await client.post(f"/v1/trips/{trip['id']}/close", json=closing_for(trip, 4, 1))
    assert first.status_code == 200

    second = await client.post(f"/v1/trips/{trip['id']}/close", json=closing_for(trip, 0, 0))
    assert second.status_code == 409
    body = second.json()
    assert body["error_code"] == "ERR_CLOSE_001"
    assert body["retryable"] is False

    detail = (await client.get(f"/v1/trips/{trip['id']}")).json()
    assert Decimal(detail["total_revenue"]) == Decimal("220.00")
    assert [item["closing_quantity"] for item in detail["line_items"]] == [4, 1]


@pytest.mark.asyncio
@pytest.mark.parametrize("quantities,error_code", [
    ((-1, 1), "ERR_CLOSE_005"),
    ((4, 6), "ERR_CLOSE_006"),
    ((21, 6), "ERR_CLOSE_006"),
])
async def test_invalid_closing_rejects_whole_request(client, fleet, manifest, quantities, error_code):
    trip = await open_reference_trip(client, fleet, manifest)

    response = await client.post(f"/v1/trips/{trip['id']}/close", json=closing_for(trip, *quantities))
    assert response.status_code == 422
    assert response.json()["error_code"] == error_code

    detail = (await client.get(f"/v1/trips/{trip['id']}")).json()
    assert detail["status"] == "IN_PROGRESS"
    assert detail["total_revenue"] is None
    assert all(item["closing_quantity"] is None for item in detail["line_items"])
    assert await resource_status(client, "vehicles", fleet["v1"]) == "ON_TRIP"


@pytest.mark.asyncio
async def test_closing_must_name_every_line(client, fleet, manifest):
    trip = await open_reference_trip(client, fleet, manifest)

    response = await client.post(f"/v1/trips/{trip['id']}/close", json={
        "lines": [{"line_item_id": trip["line_items"][0]["id"], "closing_quantity": 4}]
    })

    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "ERR_CLOSE_002"
    assert body["details"]["missing_line_ids"] == [trip["line_items"][1]["id"]]


@pytest.mark.asyncio
async def test_close_unknown_trip(client, fleet):
    response = await client.post("/v1/trips/999/close", json={"lines": []})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_open_with_zero_quantity(client, fleet):
    response = await client.post("/v1/trips", json={
        "vehicle_id": fleet["v1"],
        "driver_id": fleet["d1"],
        "lines": [{"product_id": fleet["p1"], "price_tier_id": fleet["wholesale"], "opening_quantity": 0}],
    })
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_INPUT_001"


@pytest.mark.asyncio
async def test_open_with_duplicate_lines(client, fleet, manifest, db_session):
    response = await client.post("/v1/trips", json={
        "vehicle_id": fleet["v1"],
        "driver_id": fleet["d1"],
        "lines": manifest + [manifest[0]],
    })
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_TRIP_002"
    assert (await db_session.execute(select(func.count(Trip.id)))).scalar() == 0


@pytest.mark.asyncio
async def test_open_with_inactive_product(client, fleet, manifest):
    await client.delete(f"/v1/catalog/products/{fleet['p1']}")

    response = await client.post("/v1/trips", json={
        "vehicle_id": fleet["v1"],
        "driver_id": fleet["d1"],
        "lines": manifest,
    })
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_TRIP_004"


@pytest.mark.asyncio
async def test_vehicle_on_trip_cannot_open_again(client, fleet, manifest):
    await open_reference_trip(client, fleet, manifest)

    response = await client.post("/v1/catalog/drivers", json={
        "first_name": "Other",
        "last_name": "Driver",
        "national_id": "5551234",
        "license_expiry": "2999-01-01",
        "team_id": fleet["t1"],
    })
    other_driver = response.json()["id"]

    response = await client.post("/v1/trips", json={
        "vehicle_id": fleet["v1"],
        "driver_id": other_driver,
        "lines": manifest,
    })
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_TRIP_006"
    assert response.json()["details"]["resource"] == "vehicle"


@pytest.mark.asyncio
async def test_price_change_does_not_touch_open_trip(client, fleet, manifest):
    trip = await open_reference_trip(client, fleet, manifest)

    # Reprice the tier the trip snapshotted
    response = await client.patch(f"/v1/catalog/prices/{fleet['wholesale']}", json={"value": "12.50"})
    assert response.status_code == 200
    assert Decimal(response.json()["value"]) == Decimal("12.50")

    closed = (await client.post(f"/v1/trips/{trip['id']}/close", json=closing_for(trip, 4, 1))).json()
    assert Decimal(closed["total_revenue"]) == Decimal("220.00")
    assert [Decimal(item["unit_price"]) for item in closed["line_items"]] == [Decimal("10.00"), Decimal("15.00")]

    # Trips opened afterwards pick up the new value
    reopened = await open_reference_trip(client, fleet, manifest)
    assert Decimal(reopened["line_items"][0]["unit_price"]) == Decimal("12.50")


@pytest.mark.asyncio
async def test_lifecycle_is_audited_and_locks_released(client, fleet, manifest, db_session):
    trip = await open_reference_trip(client, fleet, manifest)
    await client.post(f"/v1/trips/{trip['id']}/close", json=closing_for(trip, 4, 1))

    actions = (await db_session.execute(
        select(AuditLog.action).where(AuditLog.entity_type == "trip", AuditLog.entity_id == trip["id"])
        .order_by(AuditLog.id)
    )).scalars().all()
    assert actions == ["TRIP_OPENED", "TRIP_CLOSED"]

    closed_log = (await db_session.execute(
        select(AuditLog).where(AuditLog.action == "TRIP_CLOSED")
    )).scalar_one()
    assert closed_log.meta_data["total_revenue"] == "220.00"

    active_locks = (await db_session.execute(
        select(func.count(ResourceLock.id)).where(ResourceLock.released_at.is_(None))
    )).scalar()
    assert active_locks == 0



@pytest.mark.asyncio
async def test_failed_audit_write_rolls_back_the_opening(client, fleet, db_session, monkeypatch):
    async def failing_log_event(*args, **kwargs):
        raise RuntimeError("audit store unavailable")

    monkeypatch.setattr(trip_store, "log_event", failing_log_event)

    with pytest.raises(RuntimeError):
        await TripLifecycleService.open_trip(
            db_session, fleet["v1"], fleet["d1"], [CargoLine(fleet["p1"], fleet["wholesale"], 20)]
        )

    assert (await db_session.execute(select(func.count(Trip.id)))).scalar() == 0
    assert (await db_session.execute(select(func.count(ResourceLock.id)))).scalar() == 0
    assert await resource_status(client, "vehicles", fleet["v1"]) == "AVAILABLE"
    assert await resource_status(client, "drivers", fleet["d1"]) == "AVAILABLE"


@pytest.mark.asyncio
async def test_trip_history_endpoint(client, fleet, manifest):
    trip = await open_reference_trip(client, fleet, manifest)
    await client.post(f"/v1/trips/{trip['id']}/close", json=closing_for(trip, 4, 1))

    history = (await client.get(f"/v1/audit/trip/{trip['id']}")).json()

    assert history["total"] == 2
    assert [log["action"] for log in history["logs"]] == ["TRIP_CLOSED", "TRIP_OPENED"]
    assert history["logs"][0]["metadata"]["total_revenue"] == "220.00"

    response = await client.get(f"/v1/audit/invoice/{trip['id']}")
    assert response.status_code == 422

@pytest.mark.asyncio
async def test_active_and_finished_lists(client, fleet, manifest):
    trip = await open_reference_trip(client, fleet, manifest)

    active = (await client.get("/v1/trips/active")).json()
    assert [t["id"] for t in active] == [trip["id"]]

    await client.post(f"/v1/trips/{trip['id']}/close", json=closing_for(trip, 4, 1))

    assert (await client.get("/v1/trips/active")).json() == []
    finished = (await client.get("/v1/trips/finished", params={"driver_id": fleet["d1"]})).json()
    assert finished["total_elements"] == 1
    assert finished["total_pages"] == 1
    assert finished["number"] == 0
    assert finished["content"][0]["id"] == trip["id"]
    assert Decimal(finished["content"][0]["total_revenue"]) == Decimal("220.00")


@pytest.mark.asyncio
async def test_finished_search_rejects_negative_page(client, fleet):
    response = await client.get("/v1/trips/finished", params={"page": -1})
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_INPUT_003"
