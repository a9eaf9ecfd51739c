"""Sync orchestrator configuration.

All settings can be overridden via ``SYNC_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncConfig(BaseSettings):
    """Configuration for connector sync invocations."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        case_sensitive=False,
        extra="ignore",
    )

    # Candidate selection
    candidate_limit: int = Field(
        default=500,
        ge=1,
        le=5000,
        description="Maximum bindings processed per invocation",
    )

    # Paging
    page_limit: int = Field(
        default=100,
        ge=1,
        le=200,
        description="Mentions requested per page",
    )

    # Historical backfill
    backfill_window_days: int = Field(
        default=30,
        ge=1,
        le=365,
        description="How far back a backfill reaches",
    )
    backfill_pages_per_invocation: int = Field(
        default=10,
        ge=1,
        description="Pages fetched per binding per invocation while backfilling",
    )
    backfill_max_pages_total: int = Field(
        default=500,
        ge=1,
        description="Pages after which an unfinished backfill is failed",
    )

    # Incremental polling
    incremental_pages_per_invocation: int = Field(
        default=5,
        ge=1,
        description="Pages fetched per binding per incremental pass",
    )
    incremental_overlap_minutes: int = Field(
        default=30,
        ge=0,
        description="Overlap with the previous pass to catch late mentions",
    )
    incremental_min_window_minutes: int = Field(
        default=60,
        ge=1,
        description="Window used when a binding has never synced",
    )
