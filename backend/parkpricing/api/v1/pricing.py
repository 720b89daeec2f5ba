"""Pricing-related API endpoints."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from parkpricing.api import deps
from parkpricing.api.deps import Identity
from parkpricing.schemas.pricing import (
    CalculateTransactionRequest,
    CopyToChildrenRequest,
    CopyToChildrenResult,
    DispatchResult,
    PricingConfigSchema,
    PricingInheritanceRead,
    PricingInvalidationRead,
    PricingTreeRead,
    TransactionCalculationRead,
)
from parkpricing.services import invalidation_service, pricing_service
from parkpricing.services.hierarchy import HierarchyLevel
from parkpricing.services.invalidation_service import InvalidationChannel
from parkpricing.services.transaction_calculator import TimeRange

router = APIRouter(prefix="/pricing", tags=["pricing"])


async def _assert_pricing_permissions(
    session: AsyncSession,
    *,
    identity: Identity,
    level: HierarchyLevel,
    node_id: UUID,
) -> None:
    with deps.translate_errors():
        operator_id = await pricing_service.node_operator_id(
            session, node_id, level=level
        )
    if not identity.can_manage(operator_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions"
        )


@router.get(
    "/effective/{node_id}",
    response_model=PricingInheritanceRead,
    summary="Resolve effective pricing for a node",
)
async def get_effective_pricing(
    node_id: UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    _: Annotated[Identity, Depends(deps.get_current_identity)],
) -> PricingInheritanceRead:
    with deps.translate_errors():
        result = await pricing_service.get_effective_pricing(session, node_id)
    return PricingInheritanceRead.model_validate(result.to_dict())


@router.get(
    "/locations/{location_id}/tree",
    response_model=PricingTreeRead,
    summary="Own and effective pricing for a whole location",
)
async def get_pricing_tree(
    location_id: UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    _: Annotated[Identity, Depends(deps.get_current_identity)],
) -> PricingTreeRead:
    with deps.translate_errors():
        nodes = await pricing_service.get_pricing_tree(session, location_id)
    return PricingTreeRead.model_validate({"location_id": location_id, "nodes": nodes})


@router.post(
    "/calculate-transaction",
    response_model=TransactionCalculationRead,
    summary="Price a parking session",
)
async def calculate_transaction(
    payload: CalculateTransactionRequest,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    _: Annotated[Identity, Depends(deps.get_current_identity)],
) -> TransactionCalculationRead:
    with deps.translate_errors():
        window = TimeRange(start=payload.start_at, end=payload.end_at)
        priced = await pricing_service.calculate_transaction(
            session,
            node_id=payload.node_id,
            vehicle_type=payload.vehicle_type,
            window=window,
            discount_context=payload.discount_context,
            occupancy_rate=payload.occupancy_rate,
        )
    return TransactionCalculationRead.model_validate(priced.to_dict())


@router.get(
    "/invalidations/pending",
    response_model=list[PricingInvalidationRead],
    summary="Invalidation events not yet delivered",
)
async def list_pending_invalidations(
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    _: Annotated[Identity, Depends(deps.get_admin_identity)],
    limit: Annotated[int, Query(ge=1, le=500)] = 200,
) -> list[PricingInvalidationRead]:
    rows = await invalidation_service.list_pending(session, limit=limit)
    return [PricingInvalidationRead.model_validate(row) for row in rows]


@router.post(
    "/invalidations/dispatch",
    response_model=DispatchResult,
    summary="Deliver pending invalidation events now",
)
async def dispatch_invalidations(
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    channel: Annotated[InvalidationChannel, Depends(deps.get_invalidation_channel)],
    _: Annotated[Identity, Depends(deps.get_admin_identity)],
) -> DispatchResult:
    dispatched = await invalidation_service.dispatch_pending(session, channel)
    pending = await invalidation_service.list_pending(session)
    return DispatchResult(dispatched=dispatched, pending=len(pending))


@router.put(
    "/{level}/{node_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Set a node's own pricing",
)
async def set_pricing(
    level: HierarchyLevel,
    node_id: UUID,
    payload: PricingConfigSchema,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    identity: Annotated[Identity, Depends(deps.get_staff_identity)],
    channel: Annotated[InvalidationChannel, Depends(deps.get_invalidation_channel)],
    background_tasks: BackgroundTasks,
) -> None:
    with deps.translate_errors():
        config = payload.to_config()
    await _assert_pricing_permissions(
        session, identity=identity, level=level, node_id=node_id
    )
    with deps.translate_errors():
        await pricing_service.set_pricing(
            session, level=level, node_id=node_id, config=config
        )
    background_tasks.add_task(invalidation_service.dispatch_in_background, channel)


@router.delete(
    "/{level}/{node_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Clear a node's own pricing",
)
async def remove_pricing(
    level: HierarchyLevel,
    node_id: UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    identity: Annotated[Identity, Depends(deps.get_staff_identity)],
    channel: Annotated[InvalidationChannel, Depends(deps.get_invalidation_channel)],
    background_tasks: BackgroundTasks,
) -> None:
    await _assert_pricing_permissions(
        session, identity=identity, level=level, node_id=node_id
    )
    with deps.translate_errors():
        await pricing_service.remove_pricing(session, level=level, node_id=node_id)
    background_tasks.add_task(invalidation_service.dispatch_in_background, channel)


@router.post(
    "/{level}/{node_id}/copy-to-children",
    response_model=CopyToChildrenResult,
    summary="Copy effective pricing one level down",
)
async def copy_to_children(
    level: HierarchyLevel,
    node_id: UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    identity: Annotated[Identity, Depends(deps.get_staff_identity)],
    channel: Annotated[InvalidationChannel, Depends(deps.get_invalidation_channel)],
    background_tasks: BackgroundTasks,
    payload: CopyToChildrenRequest | None = None,
) -> CopyToChildrenResult:
    request = payload or CopyToChildrenRequest()
    await _assert_pricing_permissions(
        session, identity=identity, level=level, node_id=node_id
    )
    with deps.translate_errors():
        updated = await pricing_service.copy_to_children(
            session,
            level=level,
            node_id=node_id,
            override_existing=request.override_existing,
        )
    if updated:
        background_tasks.add_task(invalidation_service.dispatch_in_background, channel)
    return CopyToChildrenResult(updated_children=updated)
