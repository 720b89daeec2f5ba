"""Seed a demo parking hierarchy and the platform Senior/PWD discount rules."""

from __future__ import annotations

import asyncio
import uuid
from datetime import date

from sqlalchemy import select

from parkpricing.core.security import create_access_token
from parkpricing.db.session import create_schema, get_sessionmaker
from parkpricing.models import (
    DiscountRuleRecord,
    Location,
    ParkingSpot,
    Section,
    SpotStatus,
    Zone,
)
from parkpricing.services.discount_catalog import pwd_discount, senior_citizen_discount
from parkpricing.services.pricing_config import HolidayRate, PricingConfig, TimeBasedRate

DEMO_LOCATION = "Demo Mall Parking"
SEED_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
DEMO_OPERATOR_ID = uuid.UUID("00000000-0000-0000-0000-0000000000aa")


def _demo_pricing() -> PricingConfig:
    weekday_peak = tuple(
        TimeBasedRate(
            day_of_week=day,
            start_minute="17:00",
            end_minute="20:00",
            multiplier="1.5",
            name="Evening peak",
        )
        for day in range(1, 6)
    )
    return PricingConfig(
        base_rate="50.00",
        vehicle_type_rates={"motorcycle": "20.00", "suv": "60.00", "truck": "100.00"},
        time_based_rates=weekday_peak,
        holiday_rates=(
            HolidayRate(
                name="Christmas Day",
                date=date(date.today().year, 12, 25),
                multiplier="2.0",
                is_recurring=True,
            ),
        ),
        occupancy_multiplier="1.0",
        vat_rate="12",
    )


async def seed_pricing() -> None:
    await create_schema()
    sessionmaker = get_sessionmaker()

    async with sessionmaker() as session:
        location_created = False
        existing_location = (
            await session.execute(select(Location).where(Location.name == DEMO_LOCATION))
        ).scalar_one_or_none()
        if existing_location is None:
            location = Location(
                operator_id=DEMO_OPERATOR_ID,
                name=DEMO_LOCATION,
                timezone="Asia/Manila",
                pricing_config=_demo_pricing().to_dict(),
            )
            for section_name in ("Basement", "Rooftop"):
                section = Section(name=section_name)
                for zone_name in ("A", "B"):
                    zone = Zone(name=f"{section_name} {zone_name}")
                    zone.spots = [
                        ParkingSpot(
                            number=f"{zone_name}-{index:02d}", status=SpotStatus.AVAILABLE
                        )
                        for index in range(1, 6)
                    ]
                    section.zones.append(zone)
                location.sections.append(section)
            session.add(location)
            location_created = True

        existing_types = set(
            (
                await session.execute(
                    select(DiscountRuleRecord.type).where(
                        DiscountRuleRecord.operator_id.is_(None)
                    )
                )
            )
            .scalars()
            .all()
        )
        rules_created = 0
        for preset in (senior_citizen_discount(), pwd_discount()):
            if preset.type.value in existing_types:
                continue
            session.add(
                DiscountRuleRecord(
                    id=preset.id,
                    name=preset.name,
                    type=preset.type.value,
                    percentage=preset.percentage,
                    is_vat_exempt=preset.is_vat_exempt,
                    conditions=[condition.to_dict() for condition in preset.conditions],
                    operator_id=None,
                    is_active=True,
                    created_by=SEED_USER_ID,
                )
            )
            rules_created += 1

        if location_created or rules_created:
            await session.commit()

        print(
            f"Seeded {'1' if location_created else '0'} location and "
            f"{rules_created} discount rule(s)."
        )
        print(
            "Admin token: "
            + create_access_token(str(SEED_USER_ID), role="admin")
        )


def main() -> None:
    asyncio.run(seed_pricing())


if __name__ == "__main__":
    main()
