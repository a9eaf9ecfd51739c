"""Configuration for the Awario API client and remote alert validation."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AwarioConfig(BaseSettings):
    """Transport and caching settings for Awario API calls."""

    model_config = SettingsConfigDict(
        env_prefix="AWARIO_",
        case_sensitive=False,
        extra="ignore",
    )

    timeout_seconds: float = Field(
        default=20.0,
        ge=2.0,
        description="Per-request timeout",
    )
    throttle_ms: int = Field(
        default=250,
        ge=0,
        description="Minimum interval between consecutive requests",
    )
    max_retries: int = Field(
        default=4,
        ge=1,
        le=10,
        description="Total attempts per request, including the first one",
    )
    base_delay: float = Field(
        default=0.3,
        ge=0.0,
        description="Base backoff delay in seconds",
    )
    max_backoff_seconds: float = Field(
        default=10.0,
        ge=0.0,
        description="Upper bound for a single backoff sleep",
    )
    page_limit_max: int = Field(
        default=200,
        ge=1,
        description="Largest page size the mentions endpoint accepts",
    )
    alert_cache_ttl_seconds: int = Field(
        default=60,
        ge=0,
        description="TTL for the remote alert list cache (0 = no caching)",
    )
