from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from libs.secrets import get_secret


def _secret(key: str, default: str | None = None):
    return lambda: get_secret(key, default=default)


class Settings(BaseSettings):
    """Runtime configuration of the PartyStream service."""

    model_config = SettingsConfigDict(env_prefix="PARTYSTREAM_", case_sensitive=False)

    app_name: str = "partystream"

    jwt_secret: str = Field(default_factory=_secret("JWT_SECRET", "dev-secret-change-me"))
    jwt_algorithm: str = "HS256"
    access_token_hours: int = Field(24, gt=0)

    stripe_secret_key: str | None = Field(default_factory=_secret("STRIPE_SECRET_KEY"))
    stripe_webhook_secret: str | None = Field(default_factory=_secret("STRIPE_WEBHOOK_SECRET"))
    webhook_tolerance_seconds: int = Field(300, ge=0)
    service_fee_percentage: float = Field(
        0.10,
        ge=0,
        lt=1,
        description="Platform commission added on top of the booking total.",
    )
    currency: str = "usd"

    aws_region: str = "us-east-1"
    ivs_channel_type: Literal["BASIC", "STANDARD", "ADVANCED_SD", "ADVANCED_HD"] = "STANDARD"
    ivs_latency_mode: Literal["NORMAL", "LOW"] = "LOW"
    ivs_channel_prefix: str = "PartyStream"

    complete_booking_on_host_end: bool = Field(
        False,
        description="Also complete the booking when the host, not the DJ, ends the stream.",
    )

    rate_limit_max_calls: int = Field(100, gt=0)
    rate_limit_window_seconds: int = Field(900, gt=0)
    rate_limit_exempt_paths: list[str] = Field(
        default_factory=lambda: ["/health", "/metrics", "/payments/webhook"]
    )

    chat_history_limit: int = Field(50, gt=0)
    chat_history_max_limit: int = Field(200, gt=0)


@lru_cache
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
