"""
Input and output models for the semantic compiler.

CompilerInput wraps a caller's QueryPlan with the execution context
resolved upstream (tenant, location). CompiledQuery is the immutable
result handed to the execution engine.
"""

from dataclasses import dataclass
from typing import Any

from pydantic import Field, field_validator

from packages.core.query_plan.models import PlanModel, QueryPlan
from packages.core.semantic_registry.definitions import (
    DimensionDefinition,
    MetricDefinition,
)


class CompilerInput(PlanModel):
    """A plan plus the tenant context it runs under."""

    plan: QueryPlan
    tenant_id: str
    location_id: str | None = None
    max_date_range_days: int | None = Field(default=None, ge=1)
    lens_slug: str | None = None

    @field_validator("tenant_id")
    @classmethod
    def tenant_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("tenantId is required")
        return v


@dataclass(frozen=True)
class CompiledQuery:
    """
    A parameterized aggregate query.

    ``params`` lines up one-to-one with the ``$n`` placeholders in
    ``sql``; the limit is always the last parameter.
    """

    sql: str
    params: tuple[Any, ...]
    meta_defs: tuple[MetricDefinition, ...]
    dimension_defs: tuple[DimensionDefinition, ...]
    primary_table: str
    join_tables: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    limit: int | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary format."""
        return {
            "sql": self.sql,
            "params": list(self.params),
            "metaDefs": [m.slug for m in self.meta_defs],
            "dimensionDefs": [d.slug for d in self.dimension_defs],
            "primaryTable": self.primary_table,
            "joinTables": list(self.join_tables),
            "warnings": list(self.warnings),
            "limit": self.limit,
        }
