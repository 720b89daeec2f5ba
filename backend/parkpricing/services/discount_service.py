"""Persistence of discount rules and catalog loading."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parkpricing.core.config import get_settings
from parkpricing.core.errors import ConflictError, NotFoundError, ValidationError
from parkpricing.models import DiscountRuleRecord
from parkpricing.services.discount_catalog import (
    DiscountCatalog,
    DiscountRule,
    StackingOrder,
)

logger = logging.getLogger(__name__)

_MUTABLE_FIELDS = (
    "name",
    "type",
    "percentage",
    "is_vat_exempt",
    "conditions",
    "is_active",
)


def to_domain(record: DiscountRuleRecord) -> DiscountRule:
    return DiscountRule(
        id=record.id,
        name=record.name,
        type=record.type,
        percentage=record.percentage,
        is_vat_exempt=record.is_vat_exempt,
        conditions=tuple(record.conditions or ()),
        is_active=record.is_active,
        operator_id=record.operator_id,
    )


def _apply(record: DiscountRuleRecord, rule: DiscountRule) -> None:
    record.name = rule.name
    record.type = rule.type.value
    record.percentage = rule.percentage
    record.is_vat_exempt = rule.is_vat_exempt
    record.conditions = [condition.to_dict() for condition in rule.conditions]
    record.is_active = rule.is_active


async def _commit(session: AsyncSession) -> None:
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError("Discount rule conflicts with stored data") from exc


async def list_rules(
    session: AsyncSession,
    *,
    operator_id: uuid.UUID | None = None,
    include_inactive: bool = False,
) -> list[DiscountRuleRecord]:
    """Platform rules plus, when ``operator_id`` is given, that operator's rules."""
    stmt = select(DiscountRuleRecord)
    if operator_id is None:
        stmt = stmt.where(DiscountRuleRecord.operator_id.is_(None))
    else:
        stmt = stmt.where(
            or_(
                DiscountRuleRecord.operator_id == operator_id,
                DiscountRuleRecord.operator_id.is_(None),
            )
        )
    if not include_inactive:
        stmt = stmt.where(DiscountRuleRecord.is_active.is_(True))
    result = await session.execute(
        stmt.order_by(DiscountRuleRecord.created_at, DiscountRuleRecord.name)
    )
    return list(result.scalars().all())


async def get_rule(session: AsyncSession, rule_id: uuid.UUID) -> DiscountRuleRecord:
    record = await session.get(DiscountRuleRecord, rule_id)
    if record is None:
        raise NotFoundError(f"Discount rule {rule_id} not found")
    return record


async def create_rule(
    session: AsyncSession,
    *,
    created_by: uuid.UUID,
    data: Mapping[str, Any],
) -> DiscountRuleRecord:
    """Validate and persist a new rule; nothing is written when validation fails."""
    rule = DiscountRule(
        id=uuid.uuid4(),
        name=data.get("name", ""),
        type=data.get("type", ""),
        percentage=data.get("percentage"),
        is_vat_exempt=data.get("is_vat_exempt", False),
        conditions=tuple(data.get("conditions") or ()),
        is_active=data.get("is_active", True),
        operator_id=data.get("operator_id"),
    )
    record = DiscountRuleRecord(
        id=rule.id, operator_id=rule.operator_id, created_by=created_by
    )
    _apply(record, rule)
    session.add(record)
    await _commit(session)
    await session.refresh(record)
    logger.info(
        "Discount rule %s (%s) created for %s",
        record.id,
        record.type,
        record.operator_id or "platform",
    )
    return record


async def update_rule(
    session: AsyncSession,
    rule_id: uuid.UUID,
    changes: Mapping[str, Any],
) -> DiscountRuleRecord:
    """Merge ``changes`` into the stored rule, all or nothing."""
    nulls = sorted(
        key for key, value in changes.items() if key in _MUTABLE_FIELDS and value is None
    )
    if nulls:
        raise ValidationError(f"Discount rule fields cannot be null: {', '.join(nulls)}")
    record = await get_rule(session, rule_id)
    merged = {name: getattr(record, name) for name in _MUTABLE_FIELDS}
    merged.update({key: value for key, value in changes.items() if key in _MUTABLE_FIELDS})
    rule = DiscountRule(
        id=record.id,
        name=merged["name"],
        type=merged["type"],
        percentage=merged["percentage"],
        is_vat_exempt=merged["is_vat_exempt"],
        conditions=merged["conditions"],
        is_active=merged["is_active"],
        operator_id=record.operator_id,
    )
    _apply(record, rule)
    await _commit(session)
    await session.refresh(record)
    logger.info("Discount rule %s updated: %s", record.id, sorted(changes))
    return record


async def deactivate_rule(
    session: AsyncSession, rule_id: uuid.UUID
) -> DiscountRuleRecord:
    record = await get_rule(session, rule_id)
    record.is_active = False
    await _commit(session)
    logger.info("Discount rule %s deactivated", record.id)
    return record


async def load_catalog(
    session: AsyncSession, *, operator_id: uuid.UUID | None = None
) -> DiscountCatalog:
    settings = get_settings()
    records = await list_rules(session, operator_id=operator_id)
    return DiscountCatalog(
        (to_domain(record) for record in records),
        stacking_order=StackingOrder(settings.discount_stacking_order),
    )
