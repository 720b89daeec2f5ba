"""Discount rule management endpoints."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from parkpricing.api import deps
from parkpricing.api.deps import Identity, Role
from parkpricing.models import DiscountRuleRecord
from parkpricing.schemas.discount import (
    DiscountRuleCreate,
    DiscountRuleRead,
    DiscountRuleUpdate,
)
from parkpricing.services import discount_service

router = APIRouter(prefix="/discounts", tags=["discounts"])


def _forbidden() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions"
    )


async def _get_manageable_rule(
    session: AsyncSession, rule_id: UUID, identity: Identity
) -> DiscountRuleRecord:
    with deps.translate_errors():
        record = await discount_service.get_rule(session, rule_id)
    if not identity.can_manage(record.operator_id):
        raise _forbidden()
    return record


@router.get("", response_model=list[DiscountRuleRead], summary="List discount rules")
async def list_discounts(
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    identity: Annotated[Identity, Depends(deps.get_current_identity)],
    operator_id: Annotated[UUID | None, Query()] = None,
    include_inactive: bool = False,
) -> list[DiscountRuleRead]:
    if operator_id is None and identity.role is Role.OPERATOR:
        operator_id = identity.operator_id
    if include_inactive and not identity.can_manage(operator_id):
        raise _forbidden()
    records = await discount_service.list_rules(
        session, operator_id=operator_id, include_inactive=include_inactive
    )
    return [DiscountRuleRead.model_validate(record) for record in records]


@router.get(
    "/{rule_id}", response_model=DiscountRuleRead, summary="Retrieve a discount rule"
)
async def get_discount(
    rule_id: UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    _: Annotated[Identity, Depends(deps.get_current_identity)],
) -> DiscountRuleRead:
    with deps.translate_errors():
        record = await discount_service.get_rule(session, rule_id)
    return DiscountRuleRead.model_validate(record)


@router.post(
    "",
    response_model=DiscountRuleRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a discount rule",
)
async def create_discount(
    payload: DiscountRuleCreate,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    identity: Annotated[Identity, Depends(deps.get_staff_identity)],
) -> DiscountRuleRead:
    data = payload.model_dump()
    if identity.role is Role.OPERATOR and data["operator_id"] is None:
        data["operator_id"] = identity.operator_id
    if not identity.can_manage(data["operator_id"]):
        raise _forbidden()
    with deps.translate_errors():
        record = await discount_service.create_rule(
            session, created_by=identity.user_id, data=data
        )
    return DiscountRuleRead.model_validate(record)


@router.patch(
    "/{rule_id}", response_model=DiscountRuleRead, summary="Update a discount rule"
)
async def update_discount(
    rule_id: UUID,
    payload: DiscountRuleUpdate,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    identity: Annotated[Identity, Depends(deps.get_staff_identity)],
) -> DiscountRuleRead:
    await _get_manageable_rule(session, rule_id, identity)
    with deps.translate_errors():
        record = await discount_service.update_rule(
            session, rule_id, payload.model_dump(exclude_unset=True)
        )
    return DiscountRuleRead.model_validate(record)


@router.delete(
    "/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Deactivate a discount rule",
)
async def delete_discount(
    rule_id: UUID,
    session: Annotated[AsyncSession, Depends(deps.get_db_session)],
    identity: Annotated[Identity, Depends(deps.get_staff_identity)],
) -> None:
    await _get_manageable_rule(session, rule_id, identity)
    with deps.translate_errors():
        await discount_service.deactivate_rule(session, rule_id)
