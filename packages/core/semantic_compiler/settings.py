"""Compiler configuration settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CompilerSettings(BaseSettings):
    """Guardrail limits and physical column names for compiled queries."""

    # Guardrails
    default_max_date_range_days: int = Field(
        default=365,
        ge=1,
        description="Widest inclusive date span allowed when the caller sets no override",
    )
    default_row_limit: int = Field(
        default=10_000,
        ge=1,
        description="Row cap applied when a plan specifies no limit",
    )
    absolute_max_rows: int = Field(
        default=50_000,
        ge=1,
        description="Ceiling that any requested limit is clamped to",
    )

    # Columns present on every reporting table
    tenant_column: str = Field(default="tenant_id")
    location_column: str = Field(default="location_id")
    default_time_column: str = Field(
        default="business_date",
        description="Column the date range applies to when no time dimension is selected",
    )

    model_config = SettingsConfigDict(
        env_prefix="SEMANTIC_COMPILER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_compiler_settings() -> CompilerSettings:
    """Get cached compiler settings."""
    return CompilerSettings()
