"""Test fixtures for the parking pricing backend."""
from __future__ import annotations

import os
import uuid
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.pop("REDIS_URL", None)

from parkpricing.core.config import get_settings
from parkpricing.core.security import create_access_token
from parkpricing.db.session import create_schema, dispose_engine, get_sessionmaker
from parkpricing.main import app
from parkpricing.models import Location, ParkingSpot, Section, SpotStatus, Zone
from parkpricing.services.invalidation_service import close_channel
from parkpricing.services.pricing_config import PricingConfig


@pytest.fixture(scope="session")
def db_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a temporary SQLite database URL for the test session."""
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest_asyncio.fixture()
async def reset_database(db_url: str) -> AsyncIterator[None]:
    """Drop and recreate the database schema for an isolated test."""
    os.environ["DATABASE_URL"] = db_url
    get_settings.cache_clear()
    get_settings()
    await close_channel()

    await dispose_engine(db_url)
    await create_schema(db_url, drop_existing=True)
    yield
    await close_channel()
    await dispose_engine(db_url)


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture()
async def app_context(
    reset_database: AsyncIterator[None], db_url: str
) -> AsyncIterator[dict[str, object]]:
    """Yield an async client, a seeded hierarchy and role tokens.

    Location (base 50, VAT 12)
      Section "North" (no pricing)
        Zone "A" (no pricing): spots A-01 (base 80) and A-02 (no pricing)
        Zone "B" (base 70, VAT 12)
    """
    sessionmaker = get_sessionmaker(db_url)
    operator_id = uuid.uuid4()
    other_operator_id = uuid.uuid4()

    async with sessionmaker() as session:
        location = Location(
            operator_id=operator_id,
            name="Riverside Mall",
            pricing_config=PricingConfig(base_rate="50", vat_rate="12").to_dict(),
        )
        session.add(location)
        await session.flush()

        section = Section(location_id=location.id, name="North")
        session.add(section)
        await session.flush()

        zone_a = Zone(section_id=section.id, name="A")
        zone_b = Zone(
            section_id=section.id,
            name="B",
            pricing_config=PricingConfig(base_rate="70", vat_rate="12").to_dict(),
        )
        session.add_all([zone_a, zone_b])
        await session.flush()

        spot_priced = ParkingSpot(
            zone_id=zone_a.id,
            number="A-01",
            status=SpotStatus.OCCUPIED,
            pricing_config=PricingConfig(base_rate="80", vat_rate="12").to_dict(),
        )
        spot_plain = ParkingSpot(
            zone_id=zone_a.id, number="A-02", status=SpotStatus.AVAILABLE
        )
        session.add_all([spot_priced, spot_plain])
        await session.commit()

        context: dict[str, object] = {
            "operator_id": operator_id,
            "other_operator_id": other_operator_id,
            "location_id": location.id,
            "section_id": section.id,
            "zone_a_id": zone_a.id,
            "zone_b_id": zone_b.id,
            "spot_priced_id": spot_priced.id,
            "spot_plain_id": spot_plain.id,
        }

    admin_id = uuid.uuid4()
    operator_user_id = uuid.uuid4()
    context["admin_id"] = admin_id
    context["operator_user_id"] = operator_user_id
    context["admin_headers"] = _bearer(create_access_token(str(admin_id), role="admin"))
    context["operator_headers"] = _bearer(
        create_access_token(
            str(operator_user_id), role="operator", operator_id=str(operator_id)
        )
    )
    context["other_operator_headers"] = _bearer(
        create_access_token(
            str(uuid.uuid4()), role="operator", operator_id=str(other_operator_id)
        )
    )
    context["customer_headers"] = _bearer(
        create_access_token(str(uuid.uuid4()), role="customer")
    )

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        context["client"] = client
        yield context
