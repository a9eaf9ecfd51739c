"""Alert binding store configuration.

All settings can be overridden via ``BINDINGS_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BindingsConfig(BaseSettings):
    """Configuration for the alert binding store."""

    model_config = SettingsConfigDict(
        env_prefix="BINDINGS_",
        case_sensitive=False,
        extra="ignore",
    )

    sync_error_max_length: int = Field(
        default=1000,
        ge=32,
        le=10000,
        description="Maximum stored length of last_sync_error",
    )
    validation_error_max_length: int = Field(
        default=500,
        ge=32,
        le=10000,
        description="Maximum stored length of last_validation_error",
    )
    default_list_limit: int = Field(
        default=200,
        ge=1,
        description="Page size for binding and remote alert listings",
    )
    max_list_limit: int = Field(
        default=500,
        ge=1,
        description="Upper bound on a caller-supplied page size",
    )
