"""Common ORM mixins."""
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

JSONB_TYPE = JSONB().with_variant(JSON(), "sqlite")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TimestampMixin:
    """Created/updated timestamps, set in Python and defaulted by the server."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )


class PricedNodeMixin(TimestampMixin):
    """Identity and optional own pricing shared by every hierarchy level.

    ``pricing_config`` holds a serialized ``PricingConfig``; ``None`` means the
    node inherits.
    """

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    pricing_config: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB_TYPE, nullable=True
    )
