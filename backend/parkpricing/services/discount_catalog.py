"""Discount rules, eligibility conditions and catalog selection."""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from parkpricing.core.errors import ValidationError
from parkpricing.services.pricing_config import to_decimal, to_money

logger = logging.getLogger(__name__)

_MISSING = object()


class DiscountType(str, enum.Enum):
    """Closed set of discount kinds."""

    SENIOR = "senior"
    PWD = "pwd"
    CUSTOM = "custom"


class ConditionOperator(str, enum.Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN = "less_than"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"


class StackingOrder(str, enum.Enum):
    """Order in which matching platform and operator rules are applied."""

    PLATFORM_FIRST = "platform_first"
    OPERATOR_FIRST = "operator_first"


def _lookup(context: Mapping[str, Any], path: str) -> Any:
    value: Any = context
    for part in path.split("."):
        if isinstance(value, Mapping) and part in value:
            value = value[part]
        else:
            return _MISSING
    return value


def _as_number(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(str(value).strip()) if isinstance(value, str) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None
    return result if result.is_finite() else None


def _equals(actual: Any, expected: Any) -> bool:
    if isinstance(actual, bool) or isinstance(expected, bool):
        return actual is expected or str(actual).lower() == str(expected).lower()
    left, right = _as_number(actual), _as_number(expected)
    if left is not None and right is not None:
        return left == right
    return actual == expected


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, (list, tuple, set, frozenset)):
        return any(str(item).lower() == str(expected).lower() for item in actual)
    return str(expected).lower() in str(actual).lower()


@dataclass(frozen=True, slots=True)
class DiscountCondition:
    """Single ``field operator value`` test against a transaction context."""

    field: str
    operator: ConditionOperator
    value: Any

    def __post_init__(self) -> None:
        if not isinstance(self.field, str) or not self.field.strip():
            raise ValidationError("Condition field must be a non-empty string")
        try:
            object.__setattr__(self, "operator", ConditionOperator(self.operator))
        except ValueError as exc:
            raise ValidationError(f"Unknown condition operator: {self.operator!r}") from exc

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        """True when the context satisfies the condition; unknown fields never match."""
        actual = _lookup(context, self.field) if isinstance(context, Mapping) else _MISSING
        if actual is _MISSING or actual is None:
            return False
        op = self.operator
        if op is ConditionOperator.EQUALS:
            return _equals(actual, self.value)
        if op is ConditionOperator.NOT_EQUALS:
            return not _equals(actual, self.value)
        if op is ConditionOperator.CONTAINS:
            return _contains(actual, self.value)
        if op is ConditionOperator.NOT_CONTAINS:
            return not _contains(actual, self.value)
        left, right = _as_number(actual), _as_number(self.value)
        if left is None or right is None:
            return False
        if op is ConditionOperator.GREATER_THAN:
            return left > right
        if op is ConditionOperator.GREATER_THAN_OR_EQUAL:
            return left >= right
        if op is ConditionOperator.LESS_THAN:
            return left < right
        return left <= right

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DiscountCondition":
        try:
            return cls(field=data["field"], operator=data["operator"], value=data["value"])
        except (KeyError, TypeError) as exc:
            raise ValidationError("Conditions need field, operator and value") from exc

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "operator": self.operator.value, "value": self.value}


@dataclass(frozen=True, slots=True)
class AppliedDiscount:
    """Outcome of applying one rule to a subtotal."""

    rule_id: uuid.UUID
    name: str
    type: DiscountType
    percentage: Decimal
    is_vat_exempt: bool
    amount_deducted: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": str(self.rule_id),
            "name": self.name,
            "type": self.type.value,
            "percentage": str(self.percentage),
            "is_vat_exempt": self.is_vat_exempt,
            "amount_deducted": f"{self.amount_deducted:.2f}",
        }


@dataclass(frozen=True, slots=True)
class DiscountRule:
    """Named percentage discount with eligibility conditions.

    ``operator_id`` of ``None`` marks a platform-wide rule.
    """

    id: uuid.UUID
    name: str
    type: DiscountType
    percentage: Decimal
    is_vat_exempt: bool = False
    conditions: tuple[DiscountCondition, ...] = field(default_factory=tuple)
    is_active: bool = True
    operator_id: uuid.UUID | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("Discount name is required")
        try:
            object.__setattr__(self, "type", DiscountType(self.type))
        except ValueError as exc:
            raise ValidationError(f"Unknown discount type: {self.type!r}") from exc
        percentage = to_decimal(self.percentage, "percentage")
        if not Decimal("0") <= percentage <= Decimal("100"):
            raise ValidationError("percentage must be between 0 and 100")
        object.__setattr__(self, "percentage", percentage)
        if self.conditions is None or isinstance(self.conditions, (str, Mapping)):
            raise ValidationError("conditions must be a list of conditions")
        conditions = tuple(
            item if isinstance(item, DiscountCondition) else DiscountCondition.from_dict(item)
            for item in self.conditions
        )
        object.__setattr__(self, "conditions", conditions)
        for flag in ("is_vat_exempt", "is_active"):
            if not isinstance(getattr(self, flag), bool):
                raise ValidationError(f"{flag} must be true or false")

    @property
    def is_global(self) -> bool:
        return self.operator_id is None

    def matches(self, context: Mapping[str, Any]) -> bool:
        if not self.is_active:
            return False
        return all(condition.evaluate(context) for condition in self.conditions)

    def apply(self, subtotal: Decimal) -> AppliedDiscount:
        """Deduction against ``subtotal``; rules never compound on each other."""
        return AppliedDiscount(
            rule_id=self.id,
            name=self.name,
            type=self.type,
            percentage=self.percentage,
            is_vat_exempt=self.is_vat_exempt,
            amount_deducted=to_money(subtotal * self.percentage / Decimal("100")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "type": self.type.value,
            "percentage": str(self.percentage),
            "is_vat_exempt": self.is_vat_exempt,
            "conditions": [condition.to_dict() for condition in self.conditions],
            "is_active": self.is_active,
            "operator_id": str(self.operator_id) if self.operator_id else None,
        }


def senior_citizen_discount(
    *, operator_id: uuid.UUID | None = None, rule_id: uuid.UUID | None = None
) -> DiscountRule:
    return DiscountRule(
        id=rule_id or uuid.uuid4(),
        name="Senior Citizen Discount",
        type=DiscountType.SENIOR,
        percentage=Decimal("20"),
        is_vat_exempt=True,
        conditions=(
            DiscountCondition("age", ConditionOperator.GREATER_THAN_OR_EQUAL, 60),
        ),
        operator_id=operator_id,
    )


def pwd_discount(
    *, operator_id: uuid.UUID | None = None, rule_id: uuid.UUID | None = None
) -> DiscountRule:
    return DiscountRule(
        id=rule_id or uuid.uuid4(),
        name="Person with Disability Discount",
        type=DiscountType.PWD,
        percentage=Decimal("20"),
        is_vat_exempt=True,
        conditions=(DiscountCondition("has_pwd_id", ConditionOperator.EQUALS, True),),
        operator_id=operator_id,
    )


class DiscountCatalog:
    """Active platform and operator rules, selected against a transaction context."""

    def __init__(
        self,
        rules: Iterable[DiscountRule] = (),
        *,
        stacking_order: StackingOrder | str = StackingOrder.PLATFORM_FIRST,
    ) -> None:
        self._rules = list(rules)
        self.stacking_order = StackingOrder(stacking_order)

    def __len__(self) -> int:
        return len(self._rules)

    def candidates(self, operator_id: uuid.UUID | None = None) -> list[DiscountRule]:
        """Active rules visible to ``operator_id``: platform rules plus its own."""
        return [
            rule
            for rule in self._rules
            if rule.is_active and (rule.is_global or rule.operator_id == operator_id)
        ]

    def find_applicable(
        self,
        context: Mapping[str, Any],
        operator_id: uuid.UUID | None = None,
    ) -> list[DiscountRule]:
        """Matching rules in stacking order.

        When an operator rule and a platform rule of the same type both match,
        only the operator rule is kept.
        """
        matched = [rule for rule in self.candidates(operator_id) if rule.matches(context)]
        operator_rules = [rule for rule in matched if not rule.is_global]
        overridden = {rule.type for rule in operator_rules}
        platform_rules = [
            rule for rule in matched if rule.is_global and rule.type not in overridden
        ]
        if self.stacking_order is StackingOrder.OPERATOR_FIRST:
            ordered = operator_rules + platform_rules
        else:
            ordered = platform_rules + operator_rules
        logger.debug(
            "Discounts matched for operator %s: %s",
            operator_id,
            [rule.name for rule in ordered],
        )
        return ordered
