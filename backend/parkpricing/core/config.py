"""Application configuration via pydantic settings."""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from typing import Any, Literal

from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed application configuration."""

    app_env: str = Field("local", alias="APP_ENV")
    app_name: str = "Parking Pricing API"
    api_v1_prefix: str = "/api/v1"

    database_url: str = Field(..., alias="DATABASE_URL")

    secret_key: str = Field("", alias="SECRET_KEY")
    jwt_secret_key: str = Field(default="", alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    pricing_invalidation_channel: str = Field(
        "pricing.invalidated", alias="PRICING_INVALIDATION_CHANNEL"
    )

    default_base_rate: Decimal = Field(Decimal("50.00"), alias="DEFAULT_BASE_RATE")
    default_vat_rate: Decimal = Field(Decimal("12"), alias="DEFAULT_VAT_RATE")
    currency: str = Field("PHP", alias="CURRENCY")
    default_timezone: str = Field("Asia/Manila", alias="DEFAULT_TIMEZONE")
    discount_stacking_order: Literal["platform_first", "operator_first"] = Field(
        "platform_first", alias="DISCOUNT_STACKING_ORDER"
    )
    hierarchy_fetch_timeout_seconds: float = Field(
        5.0, alias="HIERARCHY_FETCH_TIMEOUT_SECONDS"
    )

    cors_allow_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://localhost:8081",
        ],
        alias="CORS_ALLOW_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=False, alias="CORS_ALLOW_CREDENTIALS")

    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[3] / ".env",
        case_sensitive=False,
    )

    def model_post_init(self, __context: Any) -> None:
        """Populate JWT secret from the generic secret when not provided."""

        if not self.jwt_secret_key:
            object.__setattr__(self, "jwt_secret_key", self.secret_key)

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()  # type: ignore[call-arg]
