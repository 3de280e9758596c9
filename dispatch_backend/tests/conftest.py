"""
Centralized Test Configuration.
"""

import pytest
from datetime import timedelta
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from dispatch_backend.app.main import app
from dispatch_backend.app.db.session import get_db, Base
from dispatch_backend.app.core.clock import utc_today

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


async def override_get_db():
    async with TestingSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


@pytest.fixture(scope="session", autouse=True)
def apply_overrides():
    """Apply overrides once for the session."""
    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


def future_expiry(days: int = 365) -> str:
    return (utc_today() + timedelta(days=days)).isoformat()


@pytest.fixture
async def fleet(client):
    """
    Master data for the reference dispatch day.

    S1 supervises team T1; D1 is in T1, D2 has no team. P1 has a
    "wholesale" tier at 10.00 and a "retail" tier at 15.00.
    """
    response = await client.post("/v1/catalog/supervisors", json={
        "email": "s1@test.com",
        "username": "supervisor1",
        "full_name": "Sara Supervisor",
    })
    assert response.status_code == 201
    s1 = response.json()["id"]

    response = await client.post("/v1/catalog/teams", json={"name": "Team North", "supervisor_id": s1})
    assert response.status_code == 201
    t1 = response.json()["id"]

    response = await client.post("/v1/catalog/vehicles", json={"plate": "abc1234", "model": "Isuzu NPR"})
    assert response.status_code == 201
    v1 = response.json()["id"]

    response = await client.post("/v1/catalog/vehicles", json={"plate": "XYZ9876", "model": "Hino 300"})
    assert response.status_code == 201
    v2 = response.json()["id"]

    response = await client.post("/v1/catalog/drivers", json={
        "first_name": "Diego",
        "last_name": "Driver",
        "national_id": "12345678",
        "license_expiry": future_expiry(),
        "team_id": t1,
    })
    assert response.status_code == 201
    d1 = response.json()["id"]

    response = await client.post("/v1/catalog/drivers", json={
        "first_name": "Dana",
        "last_name": "Loner",
        "national_id": "87654321",
        "license_expiry": future_expiry(),
    })
    assert response.status_code == 201
    d2 = response.json()["id"]

    response = await client.post("/v1/catalog/products", json={
        "name": "Bottled Water",
        "prices": [
            {"label": "wholesale", "value": "10.00"},
            {"label": "retail", "value": "15.00"},
        ],
    })
    assert response.status_code == 201
    p1 = response.json()
    tiers = {tier["label"]: tier["id"] for tier in p1["prices"]}

    return {
        "s1": s1,
        "t1": t1,
        "v1": v1,
        "v2": v2,
        "d1": d1,
        "d2": d2,
        "p1": p1["id"],
        "wholesale": tiers["wholesale"],
        "retail": tiers["retail"],
    }


@pytest.fixture
def manifest(fleet):
    """P1/wholesale x 20 and P1/retail x 5."""
    return [
        {"product_id": fleet["p1"], "price_tier_id": fleet["wholesale"], "opening_quantity": 20},
        {"product_id": fleet["p1"], "price_tier_id": fleet["retail"], "opening_quantity": 5},
    ]
