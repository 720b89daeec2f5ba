"""Health check endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter

from parkpricing.core.config import get_settings

router = APIRouter()


@router.get("", summary="Service health status")
async def healthcheck() -> dict[str, str]:
    """Return service identity and the pricing defaults in force."""
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "timestamp": datetime.now(UTC).isoformat(),
        "environment": settings.app_env,
        "currency": settings.currency,
        "discount_stacking_order": settings.discount_stacking_order,
    }
