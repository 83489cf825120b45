"""
Metric Registry for the semantic compiler.

This module defines:
- The registry contract the compiler depends on
- An in-memory registry that validates plans against a fixed catalog
- The default reporting catalog (metrics, dimensions, lenses)

The registry is the SINGLE source of table names and SQL expressions.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable

from packages.core.query_plan.models import FilterOperator, QueryPlan
from packages.core.semantic_registry.definitions import (
    DimensionDataType,
    DimensionDefinition,
    LensDefinition,
    MetricDataType,
    MetricDefinition,
    PlanValidationResult,
)

logger = logging.getLogger(__name__)


# -----------------------------
# Operator Validation Rules
# -----------------------------

# Operators allowed for each dimension data type
ALLOWED_OPERATORS: dict[DimensionDataType, set[FilterOperator]] = {
    DimensionDataType.STRING: {
        FilterOperator.EQ,
        FilterOperator.IN,
        FilterOperator.LIKE,
    },
    DimensionDataType.NUMERIC: {
        FilterOperator.EQ,
        FilterOperator.IN,
        FilterOperator.GTE,
        FilterOperator.LTE,
        FilterOperator.BETWEEN,
    },
    DimensionDataType.DATE: {
        FilterOperator.EQ,
        FilterOperator.IN,
        FilterOperator.GTE,
        FilterOperator.LTE,
        FilterOperator.BETWEEN,
    },
    DimensionDataType.TIMESTAMP: {
        FilterOperator.EQ,
        FilterOperator.GTE,
        FilterOperator.LTE,
        FilterOperator.BETWEEN,
    },
    DimensionDataType.BOOLEAN: {
        FilterOperator.EQ,
    },
}


# -----------------------------
# Registry Contract
# -----------------------------


class MetricRegistry(ABC):
    """
    Resolves metric and dimension slugs into definitions.

    Implementations may be static, database-backed or cached; the
    compiler only relies on the shape of ``PlanValidationResult``.
    """

    @abstractmethod
    async def validate_plan(
        self,
        plan: QueryPlan,
        lens_slug: str | None = None,
    ) -> PlanValidationResult:
        """
        Validate a plan and resolve its slugs.

        Args:
            plan: The caller's query plan.
            lens_slug: Optional lens narrowing the allowed catalog.

        Returns:
            PlanValidationResult with resolved definitions in selection
            order, or ``valid=False`` and the reasons.
        """


# -----------------------------
# In-memory Registry
# -----------------------------


class InMemoryMetricRegistry(MetricRegistry):
    """
    Registry backed by a fixed catalog held in memory.

    Collects every validation error instead of stopping at the first,
    so callers see all unknown or disallowed slugs at once.
    """

    def __init__(
        self,
        metrics: Iterable[MetricDefinition],
        dimensions: Iterable[DimensionDefinition],
        lenses: Iterable[LensDefinition] = (),
    ):
        self._metrics = {m.slug: m for m in metrics}
        self._dimensions = {d.slug: d for d in dimensions}
        self._lenses = {lens.slug: lens for lens in lenses}

    # -------------------------
    # Lookup Methods
    # -------------------------

    def get_metric(self, slug: str) -> MetricDefinition | None:
        """Get a metric definition by slug."""
        return self._metrics.get(slug)

    def get_dimension(self, slug: str) -> DimensionDefinition | None:
        """Get a dimension definition by slug."""
        return self._dimensions.get(slug)

    def get_lens(self, slug: str) -> LensDefinition | None:
        """Get a lens definition by slug."""
        return self._lenses.get(slug)

    def list_metrics(self, domain: str | None = None) -> list[str]:
        """List active metric slugs, optionally for one domain."""
        return [
            m.slug
            for m in self._metrics.values()
            if m.is_active and (domain is None or m.domain == domain)
        ]

    def list_dimensions(self) -> list[str]:
        """List active dimension slugs."""
        return [d.slug for d in self._dimensions.values() if d.is_active]

    # -------------------------
    # Validation
    # -------------------------

    async def validate_plan(
        self,
        plan: QueryPlan,
        lens_slug: str | None = None,
    ) -> PlanValidationResult:
        errors: list[str] = []

        metrics = self._resolve_metrics(plan.metrics, errors)
        dimensions = self._resolve_dimensions(plan.dimensions, errors)

        selected_dims = {d.slug for d in dimensions}
        self._check_required_dimensions(metrics, selected_dims, errors)
        self._check_incompatible_metrics(metrics, errors)

        if lens_slug is not None:
            self._check_lens(lens_slug, plan, errors)

        self._check_filter_operators(plan, errors)
        self._check_sort_keys(plan, errors)

        if errors:
            logger.debug("Plan rejected by registry: %s", "; ".join(errors))
            return PlanValidationResult(valid=False, errors=errors)

        return PlanValidationResult(
            valid=True,
            metrics=metrics,
            dimensions=dimensions,
        )

    def _resolve_metrics(
        self, slugs: list[str], errors: list[str]
    ) -> list[MetricDefinition]:
        """Resolve metric slugs in order, skipping duplicates."""
        resolved: list[MetricDefinition] = []
        seen: set[str] = set()
        for slug in slugs:
            if slug in seen:
                continue
            seen.add(slug)
            metric = self._metrics.get(slug)
            if metric is None:
                errors.append(f"Unknown metric: {slug}")
            elif not metric.is_active:
                errors.append(f"Metric is inactive: {slug}")
            else:
                resolved.append(metric)
        return resolved

    def _resolve_dimensions(
        self, slugs: list[str], errors: list[str]
    ) -> list[DimensionDefinition]:
        """Resolve dimension slugs in order, skipping duplicates."""
        resolved: list[DimensionDefinition] = []
        seen: set[str] = set()
        for slug in slugs:
            if slug in seen:
                continue
            seen.add(slug)
            dim = self._dimensions.get(slug)
            if dim is None:
                errors.append(f"Unknown dimension: {slug}")
            elif not dim.is_active:
                errors.append(f"Dimension is inactive: {slug}")
            else:
                resolved.append(dim)
        return resolved

    def _check_required_dimensions(
        self,
        metrics: list[MetricDefinition],
        selected_dims: set[str],
        errors: list[str],
    ) -> None:
        for metric in metrics:
            missing = [d for d in metric.requires_dimensions if d not in selected_dims]
            if missing:
                errors.append(
                    f"Metric '{metric.slug}' requires dimension(s): {', '.join(missing)}"
                )

    def _check_incompatible_metrics(
        self, metrics: list[MetricDefinition], errors: list[str]
    ) -> None:
        reported: set[frozenset[str]] = set()
        selected = {m.slug for m in metrics}
        for metric in metrics:
            for other in metric.incompatible_with:
                pair = frozenset((metric.slug, other))
                if other in selected and pair not in reported:
                    reported.add(pair)
                    errors.append(
                        f"Metric '{metric.slug}' is incompatible with '{other}'"
                    )

    def _check_lens(self, lens_slug: str, plan: QueryPlan, errors: list[str]) -> None:
        lens = self._lenses.get(lens_slug)
        if lens is None or not lens.is_active:
            errors.append(f"Unknown lens: {lens_slug}")
            return

        # dict.fromkeys: report each repeated slug once, in plan order
        if lens.allowed_metrics is not None:
            for slug in dict.fromkeys(plan.metrics):
                if slug in self._metrics and slug not in lens.allowed_metrics:
                    errors.append(f"Metric '{slug}' is not allowed in lens '{lens_slug}'")

        if lens.allowed_dimensions is not None:
            for slug in dict.fromkeys(plan.dimensions):
                if slug in self._dimensions and slug not in lens.allowed_dimensions:
                    errors.append(
                        f"Dimension '{slug}' is not allowed in lens '{lens_slug}'"
                    )

    def _check_filter_operators(self, plan: QueryPlan, errors: list[str]) -> None:
        """Validate operators against dimension types for selected dimensions."""
        selected = set(plan.dimensions)
        for f in plan.filters:
            # Unselected dimensions are dropped by the compiler, not rejected here
            if f.dimension_slug not in selected:
                continue
            dim = self._dimensions.get(f.dimension_slug)
            if dim is None:
                continue
            allowed = ALLOWED_OPERATORS.get(dim.sql_data_type, set())
            if f.operator not in allowed:
                errors.append(
                    f"Operator '{f.operator.value}' not allowed for "
                    f"{dim.sql_data_type.value} dimension '{dim.slug}'"
                )

    def _check_sort_keys(self, plan: QueryPlan, errors: list[str]) -> None:
        if not plan.sort:
            return
        valid_keys = set(plan.metrics) | set(plan.dimensions)
        for order in plan.sort:
            if order.metric_slug not in valid_keys:
                errors.append(
                    f"Sort key '{order.metric_slug}' is not a selected metric or dimension"
                )


# -----------------------------
# Default Catalog Definition
# -----------------------------

_TIME_GRAINS = ("day", "week", "month")

_DEFAULT_METRICS: list[MetricDefinition] = [
    MetricDefinition(
        slug="net_sales",
        display_name="Net Sales",
        description="Sales after discounts, voids and returns",
        sql_expression="SUM(net_sales)",
        sql_table="rm_daily_sales",
        data_type=MetricDataType.CURRENCY,
        format_pattern="$0,0.00",
        unit="USD",
    ),
    MetricDefinition(
        slug="gross_sales",
        display_name="Gross Sales",
        description="Sales before discounts",
        sql_expression="SUM(gross_sales)",
        sql_table="rm_daily_sales",
        data_type=MetricDataType.CURRENCY,
        format_pattern="$0,0.00",
        unit="USD",
    ),
    MetricDefinition(
        slug="order_count",
        display_name="Order Count",
        description="Number of closed orders",
        sql_expression="SUM(order_count)",
        sql_table="rm_daily_sales",
        format_pattern="0,0",
    ),
    MetricDefinition(
        slug="avg_order_value",
        display_name="Average Order Value",
        description="Net sales divided by order count",
        sql_expression="SUM(net_sales) / NULLIF(SUM(order_count), 0)",
        sql_table="rm_daily_sales",
        data_type=MetricDataType.CURRENCY,
        format_pattern="$0,0.00",
        unit="USD",
    ),
    MetricDefinition(
        slug="discount_total",
        display_name="Discounts",
        description="Total discounts applied",
        sql_expression="SUM(discount_total)",
        sql_table="rm_daily_sales",
        data_type=MetricDataType.CURRENCY,
        format_pattern="$0,0.00",
        unit="USD",
    ),
    MetricDefinition(
        slug="item_quantity_sold",
        display_name="Items Sold",
        description="Units sold per catalog item",
        sql_expression="SUM(quantity_sold)",
        sql_table="rm_item_sales",
        format_pattern="0,0",
    ),
    MetricDefinition(
        slug="item_revenue",
        display_name="Item Revenue",
        description="Gross revenue per catalog item",
        sql_expression="SUM(gross_revenue)",
        sql_table="rm_item_sales",
        data_type=MetricDataType.CURRENCY,
        format_pattern="$0,0.00",
        unit="USD",
    ),
    MetricDefinition(
        slug="rounds_played",
        display_name="Rounds Played",
        description="Completed golf rounds",
        domain="golf",
        sql_expression="SUM(rounds_played)",
        sql_table="rm_golf_tee_time_fact",
        format_pattern="0,0",
    ),
    MetricDefinition(
        slug="member_rounds",
        display_name="Member Rounds",
        description="Completed rounds played by members",
        domain="golf",
        sql_expression="SUM(rounds_played)",
        sql_table="rm_golf_tee_time_fact",
        sql_filter="player_type = 'member'",
        format_pattern="0,0",
    ),
    MetricDefinition(
        slug="utilization_rate",
        display_name="Tee Sheet Utilization",
        description="Booked slots over available slots",
        domain="golf",
        sql_expression="SUM(booked_slots)::numeric / NULLIF(SUM(available_slots), 0)",
        sql_table="rm_golf_tee_time_demand",
        data_type=MetricDataType.PERCENT,
        format_pattern="0.0%",
        requires_dimensions=("date",),
    ),
]

_DEFAULT_DIMENSIONS: list[DimensionDefinition] = [
    DimensionDefinition(
        slug="date",
        display_name="Date",
        sql_expression="business_date",
        sql_table="rm_daily_sales",
        sql_data_type=DimensionDataType.DATE,
        is_time_dimension=True,
        time_granularities=_TIME_GRAINS,
    ),
    DimensionDefinition(
        slug="location",
        display_name="Location",
        sql_expression="location_id",
        sql_table="rm_daily_sales",
    ),
    DimensionDefinition(
        slug="day_of_week",
        display_name="Day of Week",
        sql_expression="EXTRACT(ISODOW FROM business_date)",
        sql_table="rm_daily_sales",
        sql_data_type=DimensionDataType.NUMERIC,
    ),
    DimensionDefinition(
        slug="item",
        display_name="Item",
        sql_expression="catalog_item_name",
        sql_table="rm_item_sales",
    ),
    DimensionDefinition(
        slug="category",
        display_name="Category",
        sql_expression="category_name",
        sql_table="rm_item_sales",
    ),
    DimensionDefinition(
        slug="golf_course",
        display_name="Course",
        sql_expression="course_id",
        sql_table="rm_golf_tee_time_fact",
    ),
]

_DEFAULT_LENSES: list[LensDefinition] = [
    LensDefinition(
        slug="golf_operations",
        display_name="Golf Operations",
        allowed_metrics=("rounds_played", "member_rounds", "utilization_rate"),
        allowed_dimensions=("date", "golf_course"),
    ),
    LensDefinition(
        slug="sales",
        display_name="Sales",
        allowed_metrics=(
            "net_sales",
            "gross_sales",
            "order_count",
            "avg_order_value",
            "discount_total",
        ),
    ),
]


def get_default_registry() -> InMemoryMetricRegistry:
    """Get the default in-memory registry instance."""
    return InMemoryMetricRegistry(
        metrics=_DEFAULT_METRICS,
        dimensions=_DEFAULT_DIMENSIONS,
        lenses=_DEFAULT_LENSES,
    )
