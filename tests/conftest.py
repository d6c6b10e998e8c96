"""
Shared fixtures: an app on a throwaway SQLite file with fakeredis, an HTTP client,
and helpers to seed users and listings straight into the database.
"""
from datetime import timedelta

import fakeredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from foodlink.config import Settings
from foodlink.main import create_app
from foodlink.models.listing import Listing, ListingCategory, ListingStatus
from foodlink.models.user import User, UserRole
from foodlink.services.expiry import utcnow
from foodlink.services.role_gate import Viewer


def make_settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'foodlink.db'}",
        REDIS_URL="redis://unused:6379/0",
        LOG_LEVEL="WARNING",
    )


@pytest_asyncio.fixture
async def app(tmp_path):
    application = create_app(make_settings(tmp_path), redis_factory=fakeredis.FakeAsyncRedis)
    async with application.router.lifespan_context(application):
        yield application


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def database(app):
    return app.state.database


async def make_user(database, email, role, name=None, phone=None) -> Viewer:
    async with database.session() as db:
        user = User(email=email, hashed_password="not-a-real-hash", name=name, phone=phone, role=role)
        db.add(user)
        await db.flush()
        await db.refresh(user)
    return Viewer.from_user(user)


async def make_listing(database, donor: Viewer, **overrides) -> Listing:
    """Insert a listing directly (bypasses validation, so expired or coordinate-less rows are possible)."""
    values = dict(
        title="Vegetable biryani",
        description="Two trays from a wedding",
        quantity="20 plates",
        category=ListingCategory.VEG,
        location_text="Community hall",
        latitude=12.9716,
        longitude=77.5946,
        expiry_date=utcnow() + timedelta(days=1),
        status=ListingStatus.AVAILABLE,
        donor_id=donor.uid,
        donor_name=donor.name or "Anonymous",
    )
    values.update(overrides)
    async with database.session() as db:
        listing = Listing(**values)
        db.add(listing)
        await db.flush()
        await db.refresh(listing)
    return listing


@pytest_asyncio.fixture
async def donor(database):
    return await make_user(database, "donor@example.com", UserRole.DONOR, name="Dana Donor", phone="+91-555-0101")


@pytest_asyncio.fixture
async def other_donor(database):
    return await make_user(database, "other-donor@example.com", UserRole.DONOR, name="Omar Donor")


@pytest_asyncio.fixture
async def receiver(database):
    return await make_user(database, "receiver@example.com", UserRole.RECEIVER, name="Riya Receiver", phone="+91-555-0202")


@pytest_asyncio.fixture
async def other_receiver(database):
    return await make_user(database, "other-receiver@example.com", UserRole.RECEIVER, name="Ravi Receiver")


async def register(client, email, role="unassigned", name=None, phone=None) -> dict:
    """Register and log in through the API; returns Authorization headers."""
    body = {"email": email, "password": "secret123", "role": role}
    if name:
        body["name"] = name
    if phone:
        body["phone"] = phone
    r = await client.post("/api/auth/register", json=body)
    assert r.status_code == 200, r.text
    r = await client.post("/api/auth/login", json={"email": email, "password": "secret123"})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def listing_payload(**overrides) -> dict:
    payload = {
        "title": "Paneer curry",
        "description": "Leftover from a party, packed",
        "quantity": "5 boxes",
        "category": "veg",
        "location_text": "MG Road metro",
        "latitude": 12.9756,
        "longitude": 77.6066,
        "expiry_date": (utcnow() + timedelta(hours=6)).isoformat(),
    }
    payload.update(overrides)
    return payload


async def expire_listing(database, listing_id: int) -> None:
    """Move a listing's pickup deadline into the past without reaping it."""
    async with database.session() as db:
        listing = await db.get(Listing, listing_id)
        listing.expiry_date = utcnow() - timedelta(hours=1)
