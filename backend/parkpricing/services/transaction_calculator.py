"""Rate composition, discount application and VAT for a parking session."""

from __future__ import annotations

import dataclasses
import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterator, Sequence

from parkpricing.core.errors import ValidationError
from parkpricing.services.discount_catalog import AppliedDiscount, DiscountRule
from parkpricing.services.pricing_config import (
    PricingConfig,
    VehicleType,
    to_decimal,
    to_money,
)

logger = logging.getLogger(__name__)

ONE = Decimal("1")
ZERO = Decimal("0.00")
_HOUR = datetime.timedelta(hours=1)
_MICROS_PER_HOUR = Decimal(3_600_000_000)

# Occupancy rate (percent) lower bounds and the demand multiplier they select.
OCCUPANCY_TIERS: tuple[tuple[Decimal, Decimal], ...] = (
    (Decimal("90"), Decimal("1.5")),
    (Decimal("75"), Decimal("1.25")),
    (Decimal("50"), Decimal("1.1")),
)
LOW_OCCUPANCY_CEILING = Decimal("25")
LOW_OCCUPANCY_MULTIPLIER = Decimal("0.9")


def _to_str(value: Decimal) -> str:
    return f"{to_money(value):.2f}"


def _hours(delta: datetime.timedelta) -> Decimal:
    return Decimal(delta // datetime.timedelta(microseconds=1)) / _MICROS_PER_HOUR


def _instant(moment: datetime.datetime) -> datetime.datetime:
    return moment.astimezone(datetime.UTC) if moment.tzinfo is not None else moment


@dataclass(frozen=True, slots=True)
class TimeRange:
    """Booking window ``[start, end)``.

    Naive datetimes are read as the location's wall clock. Aware ones are
    billed hour by hour in absolute time; each unit start is then read in the
    window's own zone, so convert with ``in_timezone`` before pricing.
    """

    start: datetime.datetime
    end: datetime.datetime

    def __post_init__(self) -> None:
        if not isinstance(self.start, datetime.datetime) or not isinstance(
            self.end, datetime.datetime
        ):
            raise ValidationError("Booking window needs start and end datetimes")
        if (self.start.tzinfo is None) != (self.end.tzinfo is None):
            raise ValidationError("Booking window cannot mix naive and aware datetimes")
        if _instant(self.end) <= _instant(self.start):
            raise ValidationError("Booking window must end after it starts")

    @property
    def hours(self) -> Decimal:
        return _hours(_instant(self.end) - _instant(self.start))

    def in_timezone(self, tz: datetime.tzinfo) -> "TimeRange":
        """The same instants on ``tz``'s wall clock; naive windows are already local."""
        if self.start.tzinfo is None:
            return self
        return TimeRange(start=self.start.astimezone(tz), end=self.end.astimezone(tz))

    def units(self) -> Iterator[tuple[datetime.datetime, Decimal]]:
        """Yield ``(unit_start, hours)`` per hour from ``start``; the last unit may be partial."""
        tz = self.start.tzinfo
        cursor, end = _instant(self.start), _instant(self.end)
        while cursor < end:
            step_end = min(cursor + _HOUR, end)
            local = cursor.astimezone(tz) if tz is not None else cursor
            yield local, _hours(step_end - cursor)
            cursor = step_end


def occupancy_adjustment(occupancy_rate: Any | None) -> Decimal:
    """Demand multiplier for an occupancy rate in percent; ``None`` means no signal."""
    if occupancy_rate is None:
        return ONE
    rate = to_decimal(occupancy_rate, "occupancy_rate")
    if not Decimal("0") <= rate <= Decimal("100"):
        raise ValidationError("occupancy_rate must be between 0 and 100")
    for threshold, multiplier in OCCUPANCY_TIERS:
        if rate >= threshold:
            return multiplier
    if rate <= LOW_OCCUPANCY_CEILING:
        return LOW_OCCUPANCY_MULTIPLIER
    return ONE


@dataclass(slots=True)
class ChargeLine:
    """One billed unit of the booking window."""

    start: datetime.datetime
    hours: Decimal
    rate: Decimal
    time_multiplier: Decimal
    holiday_multiplier: Decimal
    occupancy_multiplier: Decimal
    amount: Decimal
    time_rate_name: str | None = None
    holiday_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "hours": str(self.hours.normalize()),
            "rate": _to_str(self.rate),
            "time_multiplier": str(self.time_multiplier),
            "holiday_multiplier": str(self.holiday_multiplier),
            "occupancy_multiplier": str(self.occupancy_multiplier),
            "amount": _to_str(self.amount),
            "time_rate_name": self.time_rate_name,
            "holiday_name": self.holiday_name,
        }


@dataclass(slots=True)
class TransactionCalculation:
    """Priced booking: subtotal, discounts, VAT and total."""

    subtotal: Decimal
    applied_discounts: list[AppliedDiscount]
    discount_total: Decimal
    vat_base: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    vat_exempt: bool
    total: Decimal
    lines: list[ChargeLine] = dataclasses.field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": _to_str(self.subtotal),
            "applied_discounts": [item.to_dict() for item in self.applied_discounts],
            "discount_total": _to_str(self.discount_total),
            "vat_base": _to_str(self.vat_base),
            "vat_rate": str(self.vat_rate),
            "vat_amount": _to_str(self.vat_amount),
            "vat_exempt": self.vat_exempt,
            "total": _to_str(self.total),
            "lines": [line.to_dict() for line in self.lines],
        }


class TransactionCalculator:
    """Compose an effective pricing config and discounts into a billable amount.

    Per unit: ``rate x time multiplier x holiday multiplier x occupancy multiplier x hours``.
    The time and holiday multipliers are taken at the unit's start. Every discount
    is computed on the original subtotal and the deductions are capped so the
    discount total never exceeds it. A single VAT-exempt discount zeroes VAT for
    the whole transaction.
    """

    def charge_lines(
        self,
        pricing: PricingConfig,
        vehicle_type: VehicleType | str,
        window: TimeRange,
        occupancy_rate: Any | None = None,
    ) -> list[ChargeLine]:
        rate = pricing.rate_for(vehicle_type)
        occupancy = pricing.occupancy_multiplier * occupancy_adjustment(occupancy_rate)
        lines: list[ChargeLine] = []
        for unit_start, hours in window.units():
            time_rate = pricing.time_rate_at(unit_start)
            holiday = pricing.holiday_on(unit_start.date())
            time_multiplier = time_rate.multiplier if time_rate else ONE
            holiday_multiplier = holiday.multiplier if holiday else ONE
            lines.append(
                ChargeLine(
                    start=unit_start,
                    hours=hours,
                    rate=rate,
                    time_multiplier=time_multiplier,
                    holiday_multiplier=holiday_multiplier,
                    occupancy_multiplier=occupancy,
                    amount=rate * time_multiplier * holiday_multiplier * occupancy * hours,
                    time_rate_name=time_rate.name if time_rate else None,
                    holiday_name=holiday.name if holiday else None,
                )
            )
        return lines

    def calculate(
        self,
        pricing: PricingConfig,
        vehicle_type: VehicleType | str,
        window: TimeRange,
        occupancy_rate: Any | None = None,
        discounts: Sequence[DiscountRule] = (),
    ) -> TransactionCalculation:
        lines = self.charge_lines(pricing, vehicle_type, window, occupancy_rate)
        subtotal = to_money(sum((line.amount for line in lines), ZERO))

        applied: list[AppliedDiscount] = []
        remaining = subtotal
        for rule in discounts:
            discount = rule.apply(subtotal)
            if discount.amount_deducted > remaining:
                discount = dataclasses.replace(discount, amount_deducted=remaining)
            remaining -= discount.amount_deducted
            applied.append(discount)
        discount_total = subtotal - remaining

        vat_exempt = any(item.is_vat_exempt for item in applied)
        vat_base = remaining
        if vat_exempt:
            vat_amount = ZERO
        else:
            vat_amount = to_money(vat_base * pricing.vat_rate / Decimal("100"))
        total = to_money(vat_base + vat_amount)

        logger.debug(
            "Priced %s units: subtotal=%s discounts=%s vat=%s exempt=%s",
            len(lines),
            subtotal,
            discount_total,
            vat_amount,
            vat_exempt,
        )
        return TransactionCalculation(
            subtotal=subtotal,
            applied_discounts=applied,
            discount_total=to_money(discount_total),
            vat_base=to_money(vat_base),
            vat_rate=pricing.vat_rate,
            vat_amount=vat_amount,
            vat_exempt=vat_exempt,
            total=total,
            lines=lines,
        )
