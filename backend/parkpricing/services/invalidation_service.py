"""Delivery of ``PricingInvalidated`` events to downstream caches."""

from __future__ import annotations

import json
import logging
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Deque, Protocol

import redis.asyncio as redis  # type: ignore[import-untyped]
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parkpricing.core.config import get_settings
from parkpricing.db.session import get_sessionmaker
from parkpricing.models import PricingInvalidation

logger = logging.getLogger(__name__)

_MAX_BUFFERED = 1000


@dataclass(frozen=True, slots=True)
class PricingInvalidated:
    """Signal that effective pricing under a node may have changed."""

    level: str
    node_id: uuid.UUID
    occurred_at: datetime
    event_id: uuid.UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "PricingInvalidated",
            "event_id": str(self.event_id) if self.event_id else None,
            "level": self.level,
            "node_id": str(self.node_id),
            "occurred_at": self.occurred_at.isoformat(),
        }


class InvalidationChannel(Protocol):
    async def publish(self, event: PricingInvalidated) -> None: ...


class BufferedInvalidationChannel:
    """In-process channel keeping the most recent events in FIFO order."""

    def __init__(self, maxlen: int = _MAX_BUFFERED) -> None:
        self._events: Deque[PricingInvalidated] = deque(maxlen=maxlen)

    async def publish(self, event: PricingInvalidated) -> None:
        self._events.append(event)

    def snapshot(self, limit: int = 200) -> list[PricingInvalidated]:
        """Return up to ``limit`` most recent events."""
        if limit <= 0:
            return []
        return list(self._events)[-limit:]

    def clear(self) -> None:
        self._events.clear()


class RedisInvalidationChannel:
    """Publish events as JSON on a Redis pub/sub channel."""

    def __init__(self, client: "redis.Redis", channel: str) -> None:
        self._client = client
        self._channel = channel

    async def publish(self, event: PricingInvalidated) -> None:
        await self._client.publish(self._channel, json.dumps(event.to_dict()))

    async def close(self) -> None:
        await self._client.aclose()


_channel: InvalidationChannel | None = None


def get_channel() -> InvalidationChannel:
    """Return the process-wide channel, built from settings on first use."""
    global _channel
    if _channel is None:
        settings = get_settings()
        if settings.redis_url:
            client = redis.from_url(
                settings.redis_url, encoding="utf-8", decode_responses=True
            )
            _channel = RedisInvalidationChannel(
                client, settings.pricing_invalidation_channel
            )
        else:
            _channel = BufferedInvalidationChannel()
    return _channel


async def close_channel() -> None:
    global _channel
    channel, _channel = _channel, None
    if isinstance(channel, RedisInvalidationChannel):
        await channel.close()


def record_invalidation(
    session: AsyncSession, *, level: str, node_id: uuid.UUID
) -> PricingInvalidation:
    """Stage an outbox row; it commits together with the pricing write."""
    row = PricingInvalidation(level=level, node_id=node_id)
    session.add(row)
    return row


async def list_pending(
    session: AsyncSession, *, limit: int = 500
) -> list[PricingInvalidation]:
    result = await session.execute(
        select(PricingInvalidation)
        .where(PricingInvalidation.dispatched_at.is_(None))
        .order_by(PricingInvalidation.created_at)
        .limit(limit)
    )
    return list(result.scalars().all())


async def dispatch_pending(
    session: AsyncSession,
    channel: InvalidationChannel,
    *,
    limit: int = 500,
) -> int:
    """Publish undispatched events; failed rows stay pending for a later retry."""
    delivered = 0
    for row in await list_pending(session, limit=limit):
        event = PricingInvalidated(
            level=row.level,
            node_id=row.node_id,
            occurred_at=row.created_at,
            event_id=row.id,
        )
        try:
            await channel.publish(event)
        except Exception as exc:
            logger.exception(
                "Failed to publish pricing invalidation for %s %s", row.level, row.node_id
            )
            row.error = str(exc) or exc.__class__.__name__
            continue
        row.dispatched_at = datetime.now(UTC)
        row.error = None
        delivered += 1
    await session.commit()
    return delivered


async def dispatch_in_background(channel: InvalidationChannel) -> None:
    """Fire-and-forget dispatch with its own session, for BackgroundTasks."""
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        try:
            await dispatch_pending(session, channel)
        except Exception:  # pragma: no cover - best effort delivery
            logger.exception("Pricing invalidation dispatch failed")
