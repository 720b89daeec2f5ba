"""Immutable pricing policy attached to a node of the parking hierarchy."""

from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from parkpricing.core.errors import ComputationError, ValidationError

MONEY_PLACES = Decimal("0.01")
MINUTES_PER_DAY = 24 * 60
DAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)


class VehicleType(str, enum.Enum):
    """Vehicle classes that may carry their own hourly rate."""

    CAR = "car"
    MOTORCYCLE = "motorcycle"
    TRUCK = "truck"
    VAN = "van"
    BUS = "bus"
    SUV = "suv"

    @classmethod
    def parse(cls, value: "VehicleType | str") -> "VehicleType":
        try:
            return cls(value)
        except ValueError as exc:
            raise ValidationError(f"Unknown vehicle type: {value!r}") from exc


def to_money(value: Decimal | int | str) -> Decimal:
    return Decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field_name: str) -> Decimal:
    """Coerce a numeric input to Decimal without passing through binary floats."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number")
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f"{field_name} must be a number") from exc
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite")
    return result


def _non_negative(value: Any, field_name: str) -> Decimal:
    result = to_decimal(value, field_name)
    if result < 0:
        raise ValidationError(f"{field_name} cannot be negative")
    return result


def _positive(value: Any, field_name: str) -> Decimal:
    result = to_decimal(value, field_name)
    if result <= 0:
        raise ValidationError(f"{field_name} must be greater than 0")
    return result


def _parse_clock(value: Any, field_name: str, *, allow_end_of_day: bool = False) -> int:
    """Return minutes since midnight for an ``HH:MM`` string or ``time``."""
    if isinstance(value, int) and not isinstance(value, bool):
        minutes = value
    elif isinstance(value, datetime.time):
        minutes = value.hour * 60 + value.minute
    elif isinstance(value, str):
        hours, sep, mins = value.strip().partition(":")
        if not sep or not hours.isdigit() or not mins[:2].isdigit():
            raise ValidationError(f"{field_name} must use HH:MM format")
        minutes = int(hours) * 60 + int(mins[:2])
    else:
        raise ValidationError(f"{field_name} must use HH:MM format")
    upper = MINUTES_PER_DAY if allow_end_of_day else MINUTES_PER_DAY - 1
    if not 0 <= minutes <= upper:
        raise ValidationError(f"{field_name} is outside the day")
    return minutes


def _format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def day_index(moment: datetime.datetime | datetime.date) -> int:
    """Day of week with 0 = Sunday."""
    return moment.isoweekday() % 7


@dataclass(frozen=True, slots=True)
class TimeBasedRate:
    """Multiplier applied on one weekday between ``start`` (inclusive) and ``end`` (exclusive)."""

    day_of_week: int
    start_minute: int
    end_minute: int
    multiplier: Decimal
    name: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.day_of_week, bool) or self.day_of_week not in range(7):
            raise ValidationError("day_of_week must be between 0 (Sunday) and 6")
        object.__setattr__(
            self, "start_minute", _parse_clock(self.start_minute, "start_time")
        )
        object.__setattr__(
            self,
            "end_minute",
            _parse_clock(self.end_minute, "end_time", allow_end_of_day=True),
        )
        if self.end_minute <= self.start_minute:
            raise ValidationError(
                f"Time-based rate {self.name!r} must end after it starts"
            )
        object.__setattr__(self, "multiplier", _positive(self.multiplier, "multiplier"))

    @property
    def start_time(self) -> str:
        return _format_clock(self.start_minute)

    @property
    def end_time(self) -> str:
        return _format_clock(self.end_minute)

    @property
    def day_name(self) -> str:
        return DAY_NAMES[self.day_of_week]

    def matches(self, moment: datetime.datetime) -> bool:
        if self.end_minute <= self.start_minute:
            raise ComputationError(
                f"Time-based rate {self.name!r} ends at {self.end_time} "
                f"before it starts at {self.start_time}"
            )
        if day_index(moment) != self.day_of_week:
            return False
        minute = moment.hour * 60 + moment.minute
        return self.start_minute <= minute < self.end_minute

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TimeBasedRate":
        try:
            return cls(
                day_of_week=data["day_of_week"],
                start_minute=data["start_time"],
                end_minute=data["end_time"],
                multiplier=data["multiplier"],
                name=str(data.get("name") or ""),
            )
        except KeyError as exc:
            raise ValidationError(f"Time-based rate is missing {exc.args[0]}") from exc

    def to_dict(self) -> dict[str, Any]:
        return {
            "day_of_week": self.day_of_week,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "multiplier": str(self.multiplier),
            "name": self.name,
        }


@dataclass(frozen=True, slots=True)
class HolidayRate:
    """Multiplier for a specific date, or for a month/day every year when recurring."""

    name: str
    date: datetime.date
    multiplier: Decimal
    is_recurring: bool = False

    def __post_init__(self) -> None:
        value = self.date
        if isinstance(value, datetime.datetime):
            value = value.date()
        elif isinstance(value, str):
            try:
                value = datetime.date.fromisoformat(value[:10])
            except ValueError as exc:
                raise ValidationError(f"Invalid holiday date: {self.date!r}") from exc
        elif not isinstance(value, datetime.date):
            raise ValidationError(f"Invalid holiday date: {self.date!r}")
        object.__setattr__(self, "date", value)
        object.__setattr__(self, "multiplier", _positive(self.multiplier, "multiplier"))
        object.__setattr__(self, "is_recurring", bool(self.is_recurring))

    def applies_to(self, day: datetime.date) -> bool:
        if self.is_recurring:
            return (day.month, day.day) == (self.date.month, self.date.day)
        return day == self.date

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HolidayRate":
        try:
            return cls(
                name=str(data.get("name") or ""),
                date=data["date"],
                multiplier=data["multiplier"],
                is_recurring=bool(data.get("is_recurring", False)),
            )
        except KeyError as exc:
            raise ValidationError(f"Holiday rate is missing {exc.args[0]}") from exc

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "date": self.date.isoformat(),
            "multiplier": str(self.multiplier),
            "is_recurring": self.is_recurring,
        }


def _vehicle_rates(
    raw: Mapping[Any, Any] | Iterable[Mapping[str, Any]] | None,
) -> Mapping[VehicleType, Decimal]:
    rates: dict[VehicleType, Decimal] = {}
    if raw is None:
        pairs: Iterable[tuple[Any, Any]] = ()
    elif isinstance(raw, Mapping):
        pairs = raw.items()
    else:
        try:
            pairs = [(entry["vehicle_type"], entry["rate"]) for entry in raw]
        except (KeyError, TypeError) as exc:
            raise ValidationError(
                "vehicle_type_rates entries need vehicle_type and rate"
            ) from exc
    for key, rate in pairs:
        vehicle_type = VehicleType.parse(key)
        if vehicle_type in rates:
            raise ValidationError(f"Duplicate rate for vehicle type {vehicle_type.value}")
        rates[vehicle_type] = _non_negative(rate, f"{vehicle_type.value} rate")
    return MappingProxyType(rates)


@dataclass(frozen=True, slots=True)
class PricingConfig:
    """Price policy for a hierarchy node; any change yields a new instance."""

    base_rate: Decimal
    vehicle_type_rates: Mapping[VehicleType, Decimal] = field(default_factory=dict)
    time_based_rates: tuple[TimeBasedRate, ...] = ()
    holiday_rates: tuple[HolidayRate, ...] = ()
    occupancy_multiplier: Decimal = Decimal("1")
    vat_rate: Decimal = Decimal("12")

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_rate", _non_negative(self.base_rate, "base_rate"))
        object.__setattr__(
            self, "vehicle_type_rates", _vehicle_rates(self.vehicle_type_rates)
        )
        time_rates = tuple(self.time_based_rates)
        if not all(isinstance(rate, TimeBasedRate) for rate in time_rates):
            raise ValidationError("time_based_rates must contain TimeBasedRate entries")
        object.__setattr__(self, "time_based_rates", time_rates)
        holidays = tuple(self.holiday_rates)
        if not all(isinstance(rate, HolidayRate) for rate in holidays):
            raise ValidationError("holiday_rates must contain HolidayRate entries")
        object.__setattr__(self, "holiday_rates", holidays)
        object.__setattr__(
            self,
            "occupancy_multiplier",
            _non_negative(self.occupancy_multiplier, "occupancy_multiplier"),
        )
        vat_rate = to_decimal(self.vat_rate, "vat_rate")
        if not Decimal("0") <= vat_rate <= Decimal("100"):
            raise ValidationError("vat_rate must be between 0 and 100")
        object.__setattr__(self, "vat_rate", vat_rate)

    def rate_for(self, vehicle_type: VehicleType | str) -> Decimal:
        """Hourly rate for a vehicle class, falling back to the base rate."""
        return self.vehicle_type_rates.get(VehicleType.parse(vehicle_type), self.base_rate)

    def time_rate_at(self, moment: datetime.datetime) -> TimeBasedRate | None:
        """First declared time-based rate covering ``moment``."""
        for rate in self.time_based_rates:
            if rate.matches(moment):
                return rate
        return None

    def holiday_on(self, day: datetime.date) -> HolidayRate | None:
        for holiday in self.holiday_rates:
            if holiday.applies_to(day):
                return holiday
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PricingConfig":
        """Build a validated config from its persisted JSON shape."""
        if not isinstance(data, Mapping):
            raise ValidationError("pricing_config must be an object")
        if "base_rate" not in data:
            raise ValidationError("pricing_config is missing base_rate")
        occupancy = data.get("occupancy_multiplier")
        vat_rate = data.get("vat_rate")
        return cls(
            base_rate=data["base_rate"],
            vehicle_type_rates=_vehicle_rates(data.get("vehicle_type_rates")),
            time_based_rates=tuple(
                TimeBasedRate.from_dict(item) for item in data.get("time_based_rates") or ()
            ),
            holiday_rates=tuple(
                HolidayRate.from_dict(item) for item in data.get("holiday_rates") or ()
            ),
            occupancy_multiplier=Decimal("1") if occupancy is None else occupancy,
            vat_rate=Decimal("12") if vat_rate is None else vat_rate,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_rate": str(self.base_rate),
            "vehicle_type_rates": [
                {"vehicle_type": vehicle_type.value, "rate": str(rate)}
                for vehicle_type, rate in self.vehicle_type_rates.items()
            ],
            "time_based_rates": [rate.to_dict() for rate in self.time_based_rates],
            "holiday_rates": [rate.to_dict() for rate in self.holiday_rates],
            "occupancy_multiplier": str(self.occupancy_multiplier),
            "vat_rate": str(self.vat_rate),
        }


DEFAULT_PRICING = PricingConfig(
    base_rate=Decimal("50.00"),
    occupancy_multiplier=Decimal("1.0"),
    vat_rate=Decimal("12"),
)
