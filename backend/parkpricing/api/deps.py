"""Common API dependencies."""

from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import AsyncGenerator, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from parkpricing.core.errors import (
    ComputationError,
    ConflictError,
    HierarchyFetchError,
    NotFoundError,
    ValidationError,
)
from parkpricing.core.security import decode_access_token
from parkpricing.db.session import get_session
from parkpricing.services.invalidation_service import InvalidationChannel, get_channel

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class Role(str, enum.Enum):
    ADMIN = "admin"
    OPERATOR = "operator"
    CUSTOMER = "customer"


@dataclass(frozen=True, slots=True)
class Identity:
    """Authenticated caller as asserted by the identity provider's token."""

    user_id: uuid.UUID
    role: Role
    operator_id: uuid.UUID | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def can_manage(self, operator_id: uuid.UUID | None) -> bool:
        """Admins manage everything; operators only their own scope."""
        if self.is_admin:
            return True
        return (
            self.role is Role.OPERATOR
            and self.operator_id is not None
            and self.operator_id == operator_id
        )


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session."""
    async for session in get_session():
        yield session


async def get_current_identity(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> Identity:
    """Authenticate request via bearer token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError as exc:
        raise credentials_exception from exc

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
        role = Role(payload.get("role", Role.CUSTOMER.value))
        raw_operator = payload.get("operator_id")
        operator_id = uuid.UUID(str(raw_operator)) if raw_operator else None
    except (ValueError, TypeError) as exc:
        raise credentials_exception from exc
    return Identity(user_id=user_id, role=role, operator_id=operator_id)


async def get_staff_identity(
    identity: Annotated[Identity, Depends(get_current_identity)],
) -> Identity:
    """Require an admin or operator."""
    if identity.role is Role.CUSTOMER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions"
        )
    return identity


async def get_admin_identity(
    identity: Annotated[Identity, Depends(get_current_identity)],
) -> Identity:
    if not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions"
        )
    return identity


def get_invalidation_channel() -> InvalidationChannel:
    return get_channel()


@contextmanager
def translate_errors() -> Iterator[None]:
    """Map pricing engine errors onto HTTP responses."""
    try:
        yield
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)
        ) from exc
    except ConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except HierarchyFetchError as exc:
        logger.warning("Hierarchy fetch failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    except ComputationError as exc:
        logger.exception("Pricing computation failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Pricing computation failed",
        ) from exc
