"""Tests for pricing config construction and lookups."""

from __future__ import annotations

import datetime
from decimal import Decimal

import pytest

from parkpricing.core.errors import ComputationError, ValidationError
from parkpricing.services.pricing_config import (
    DEFAULT_PRICING,
    HolidayRate,
    PricingConfig,
    TimeBasedRate,
    VehicleType,
    day_index,
)

MONDAY = datetime.date(2024, 6, 3)


def test_default_pricing_constants() -> None:
    assert DEFAULT_PRICING.base_rate == Decimal("50.00")
    assert DEFAULT_PRICING.vat_rate == Decimal("12")
    assert DEFAULT_PRICING.occupancy_multiplier == Decimal("1.0")
    assert not DEFAULT_PRICING.vehicle_type_rates
    assert DEFAULT_PRICING.time_based_rates == ()
    assert DEFAULT_PRICING.holiday_rates == ()


def test_zero_rates_are_legal() -> None:
    config = PricingConfig(base_rate=0, occupancy_multiplier=0, vat_rate=0)
    assert config.base_rate == 0
    assert config.occupancy_multiplier == 0
    assert config.vat_rate == 0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"base_rate": "-1"},
        {"base_rate": "10", "occupancy_multiplier": "-0.5"},
        {"base_rate": "10", "vat_rate": "-1"},
        {"base_rate": "10", "vat_rate": "100.01"},
        {"base_rate": "10", "vehicle_type_rates": {"car": "-5"}},
        {"base_rate": "10", "vehicle_type_rates": {"hovercraft": "5"}},
        {"base_rate": "NaN"},
        {"base_rate": True},
    ],
)
def test_invalid_configs_are_rejected(kwargs: dict) -> None:
    with pytest.raises(ValidationError):
        PricingConfig(**kwargs)


def test_floats_do_not_leak_binary_noise() -> None:
    config = PricingConfig(base_rate=0.1, vat_rate=12.5)
    assert config.base_rate == Decimal("0.1")
    assert config.vat_rate == Decimal("12.5")


def test_vehicle_rate_overrides_base_rate() -> None:
    config = PricingConfig(base_rate="50", vehicle_type_rates={"motorcycle": "20"})
    assert config.rate_for(VehicleType.MOTORCYCLE) == Decimal("20")
    assert config.rate_for("truck") == Decimal("50")
    with pytest.raises(ValidationError):
        config.rate_for("spaceship")


def test_vehicle_rates_are_read_only() -> None:
    config = PricingConfig(base_rate="50", vehicle_type_rates={"car": "40"})
    with pytest.raises(TypeError):
        config.vehicle_type_rates[VehicleType.CAR] = Decimal("1")  # type: ignore[index]


def test_duplicate_vehicle_rate_entries_rejected() -> None:
    with pytest.raises(ValidationError):
        PricingConfig.from_dict(
            {
                "base_rate": "50",
                "vehicle_type_rates": [
                    {"vehicle_type": "car", "rate": "40"},
                    {"vehicle_type": "car", "rate": "45"},
                ],
            }
        )


def test_day_index_starts_on_sunday() -> None:
    assert day_index(datetime.date(2024, 6, 2)) == 0
    assert day_index(MONDAY) == 1
    assert day_index(datetime.date(2024, 6, 8)) == 6


def test_time_based_rate_window_is_half_open() -> None:
    rate = TimeBasedRate(
        day_of_week=1, start_minute="17:00", end_minute="19:00", multiplier="1.5"
    )
    at = lambda hour, minute: datetime.datetime.combine(  # noqa: E731
        MONDAY, datetime.time(hour, minute)
    )
    assert not rate.matches(at(16, 59))
    assert rate.matches(at(17, 0))
    assert rate.matches(at(18, 59))
    assert not rate.matches(at(19, 0))
    assert not rate.matches(at(17, 0) + datetime.timedelta(days=1))


def test_time_based_rate_may_end_at_midnight() -> None:
    rate = TimeBasedRate(
        day_of_week=5, start_minute="22:00", end_minute="24:00", multiplier="2"
    )
    assert rate.end_time == "24:00"
    assert rate.day_name == "Friday"
    assert rate.matches(datetime.datetime(2024, 6, 7, 23, 59))


@pytest.mark.parametrize(
    "start,end",
    [("19:00", "17:00"), ("10:00", "10:00"), ("25:00", "26:00"), ("7pm", "9pm")],
)
def test_time_based_rate_rejects_bad_windows(start: str, end: str) -> None:
    with pytest.raises(ValidationError):
        TimeBasedRate(day_of_week=1, start_minute=start, end_minute=end, multiplier="1")


def test_time_based_rate_rejects_bad_day_and_multiplier() -> None:
    with pytest.raises(ValidationError):
        TimeBasedRate(day_of_week=7, start_minute="01:00", end_minute="02:00", multiplier="1")
    with pytest.raises(ValidationError):
        TimeBasedRate(day_of_week=1, start_minute="01:00", end_minute="02:00", multiplier="0")


def test_inverted_window_that_bypassed_validation_fails_loudly() -> None:
    rate = TimeBasedRate(
        day_of_week=1, start_minute="17:00", end_minute="19:00", multiplier="1.5"
    )
    object.__setattr__(rate, "end_minute", 16 * 60)
    with pytest.raises(ComputationError):
        rate.matches(datetime.datetime(2024, 6, 3, 18, 0))


def test_first_declared_time_rate_wins() -> None:
    config = PricingConfig(
        base_rate="50",
        time_based_rates=(
            TimeBasedRate(1, "08:00", "12:00", "1.2", "Morning"),
            TimeBasedRate(1, "10:00", "14:00", "1.8", "Late morning"),
        ),
    )
    picked = config.time_rate_at(datetime.datetime(2024, 6, 3, 11, 0))
    assert picked is not None and picked.name == "Morning"
    picked = config.time_rate_at(datetime.datetime(2024, 6, 3, 13, 0))
    assert picked is not None and picked.name == "Late morning"
    assert config.time_rate_at(datetime.datetime(2024, 6, 3, 15, 0)) is None


def test_holiday_recurrence() -> None:
    fixed = HolidayRate(name="Election", date="2024-05-13", multiplier="1.5")
    yearly = HolidayRate(
        name="Christmas", date=datetime.date(2020, 12, 25), multiplier="2", is_recurring=True
    )
    assert fixed.applies_to(datetime.date(2024, 5, 13))
    assert not fixed.applies_to(datetime.date(2025, 5, 13))
    assert yearly.applies_to(datetime.date(2031, 12, 25))
    assert not yearly.applies_to(datetime.date(2031, 12, 24))
    with pytest.raises(ValidationError):
        HolidayRate(name="Bad", date="not-a-date", multiplier="1")


def test_persisted_shape_round_trip() -> None:
    config = PricingConfig(
        base_rate="45.50",
        vehicle_type_rates={"suv": "60"},
        time_based_rates=(TimeBasedRate(6, "18:00", "22:00", "1.25", "Saturday night"),),
        holiday_rates=(HolidayRate("New Year", "2024-01-01", "2", True),),
        occupancy_multiplier="0",
        vat_rate="12",
    )
    payload = config.to_dict()
    assert payload["vehicle_type_rates"] == [{"vehicle_type": "suv", "rate": "60"}]
    assert payload["time_based_rates"][0]["start_time"] == "18:00"
    assert payload["occupancy_multiplier"] == "0"
    assert PricingConfig.from_dict(payload) == config


def test_from_dict_requires_base_rate() -> None:
    with pytest.raises(ValidationError):
        PricingConfig.from_dict({"vat_rate": "12"})
    with pytest.raises(ValidationError):
        PricingConfig.from_dict(
            {"base_rate": "10", "time_based_rates": [{"day_of_week": 1}]}
        )
