"""
Explainability Builder for the semantic compiler.

Builds a structured, human-readable explanation of how a plan
was interpreted, based on the plan and its CompiledQuery.

This module is deterministic and does NOT inspect SQL.
"""

from dataclasses import dataclass, field

from packages.core.query_plan.models import (
    FilterClause,
    FilterOperator,
    QueryPlan,
    TimeGranularity,
)
from packages.core.semantic_compiler.compiler import resolve_order
from packages.core.semantic_compiler.models import CompiledQuery


@dataclass
class QueryExplanation:
    """Structured explanation of a compiled plan."""

    aggregates: list[str] = field(default_factory=list)
    group_by: list[str] = field(default_factory=list)
    filters: list[str] = field(default_factory=list)
    order_by: list[str] = field(default_factory=list)
    date_range: str | None = None
    limit: int | None = None
    source_tables: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary format."""
        return {
            "aggregates": self.aggregates,
            "groupBy": self.group_by,
            "filters": self.filters,
            "orderBy": self.order_by,
            "dateRange": self.date_range,
            "limit": self.limit,
            "sourceTables": self.source_tables,
            "warnings": self.warnings,
        }

    def to_natural_language(self) -> str:
        """Generate a natural language description of the query."""
        parts = []

        if self.aggregates:
            parts.append(f"Calculating {', '.join(self.aggregates)}")

        if self.group_by:
            parts.append(f"grouped by {', '.join(self.group_by)}")

        if self.date_range:
            parts.append(f"for {self.date_range}")

        if self.filters:
            parts.append(f"where {' and '.join(self.filters)}")

        if self.order_by:
            parts.append(f"ordered by {', '.join(self.order_by)}")

        if self.limit:
            parts.append(f"limited to {self.limit} rows")

        if self.source_tables:
            parts.append(f"using data from {', '.join(self.source_tables)}")

        return " ".join(parts) + "." if parts else "No query to explain."


class ExplainabilityBuilder:
    """Builds explanations from a plan and its compiled query."""

    def build(self, compiled: CompiledQuery, plan: QueryPlan) -> QueryExplanation:
        """
        Build an explanation object from a compiled query.

        Args:
            compiled: Output of the compiler for ``plan``
            plan: The plan that was compiled

        Returns:
            QueryExplanation with structured explanation data
        """
        return QueryExplanation(
            aggregates=self._build_aggregates(compiled),
            group_by=self._build_group_by(compiled, plan),
            filters=self._build_filters(compiled, plan),
            order_by=self._build_order_by(compiled, plan),
            date_range=self._build_date_range(plan),
            limit=compiled.limit,
            source_tables=[compiled.primary_table, *compiled.join_tables],
            warnings=list(compiled.warnings),
        )

    def build_dict(self, compiled: CompiledQuery, plan: QueryPlan) -> dict:
        """Build explanation and return as dictionary."""
        return self.build(compiled, plan).to_dict()

    # -------------------------
    # Section builders
    # -------------------------

    def _build_aggregates(self, compiled: CompiledQuery) -> list[str]:
        return [
            f"{m.display_name or m.slug} ({m.sql_expression})"
            for m in compiled.meta_defs
        ]

    def _build_group_by(self, compiled: CompiledQuery, plan: QueryPlan) -> list[str]:
        grain = plan.time_granularity
        group_by = []
        for dim in compiled.dimension_defs:
            # day is the identity bucket
            if dim.is_time_dimension and grain not in (None, TimeGranularity.DAY):
                group_by.append(f"{dim.slug} by {grain.value}")
            else:
                group_by.append(dim.slug)
        return group_by

    def _build_filters(self, compiled: CompiledQuery, plan: QueryPlan) -> list[str]:
        """Only filters that made it into the query."""
        selected = {d.slug for d in compiled.dimension_defs}
        return [
            self._format_filter(f)
            for f in plan.filters
            if f.dimension_slug in selected
        ]

    def _build_order_by(self, compiled: CompiledQuery, plan: QueryPlan) -> list[str]:
        return [
            f"{order.metric_slug} {order.direction.value.upper()}"
            for order in resolve_order(plan, compiled.meta_defs, compiled.dimension_defs)
        ]

    def _build_date_range(self, plan: QueryPlan) -> str | None:
        if plan.date_range is None:
            return None
        return f"{plan.date_range.start} to {plan.date_range.end}"

    # -------------------------
    # Formatting helpers
    # -------------------------

    def _format_filter(self, f: FilterClause) -> str:
        """Format a single filter as a readable string."""
        name = f.dimension_slug

        match f.operator:
            case FilterOperator.BETWEEN:
                return f"{name} between {f.range_start} and {f.range_end}"

            case FilterOperator.IN:
                values = ", ".join(repr(v) for v in f.values or [])
                return f"{name} in ({values})"

            case FilterOperator.LIKE:
                return f"{name} contains {f.value!r}"

            case FilterOperator.EQ:
                return f"{name} = {f.value!r}"

            case FilterOperator.GTE:
                return f"{name} >= {f.value}"

            case FilterOperator.LTE:
                return f"{name} <= {f.value}"

            case _:
                return f"{name} {f.operator.value} {f.value}"
