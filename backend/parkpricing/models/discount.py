"""Persisted discount rules."""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, CheckConstraint, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from parkpricing.db.base import Base
from parkpricing.models.mixins import JSONB_TYPE, TimestampMixin


class DiscountRuleRecord(TimestampMixin, Base):
    """Platform-wide (operator_id is null) or operator-scoped discount rule."""

    __tablename__ = "discount_rules"
    __table_args__ = (
        CheckConstraint(
            "percentage >= 0 AND percentage <= 100", name="ck_discount_percentage"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    is_vat_exempt: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    conditions: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB_TYPE, default=list, nullable=False
    )
    operator_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[uuid.UUID] = mapped_column(nullable=False)
