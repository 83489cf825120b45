"""
Tests for the in-memory Metric Registry.

Tests that QueryPlan objects are correctly validated and resolved
against the default reporting catalog.
"""

import asyncio

import pytest

from packages.core.query_plan.models import (
    FilterClause,
    FilterOperator,
    QueryPlan,
    SortSpec,
)
from packages.core.semantic_registry.definitions import (
    DimensionDefinition,
    LensDefinition,
    MetricDefinition,
    PlanValidationResult,
    TrustedSql,
)
from packages.core.semantic_registry.registry import (
    InMemoryMetricRegistry,
    get_default_registry,
)


# -----------------------------
# Fixtures
# -----------------------------


@pytest.fixture
def registry() -> InMemoryMetricRegistry:
    """Create the default registry."""
    return get_default_registry()


def validate(
    registry: InMemoryMetricRegistry,
    plan: QueryPlan,
    lens_slug: str | None = None,
) -> PlanValidationResult:
    return asyncio.run(registry.validate_plan(plan, lens_slug=lens_slug))


# -----------------------------
# Valid Plan Tests
# -----------------------------


class TestValidPlans:
    """Tests for plans the catalog accepts."""

    def test_simple_plan(self, registry: InMemoryMetricRegistry) -> None:
        """A known metric and dimension should resolve."""
        result = validate(registry, QueryPlan(metrics=["net_sales"], dimensions=["date"]))

        assert result.valid
        assert result.errors == ()
        assert [m.slug for m in result.metrics] == ["net_sales"]
        assert [d.slug for d in result.dimensions] == ["date"]

    def test_resolution_keeps_selection_order(self, registry: InMemoryMetricRegistry) -> None:
        """Definitions come back in the order the plan lists them."""
        result = validate(
            registry,
            QueryPlan(
                metrics=["order_count", "net_sales"],
                dimensions=["location", "date"],
            ),
        )

        assert [m.slug for m in result.metrics] == ["order_count", "net_sales"]
        assert [d.slug for d in result.dimensions] == ["location", "date"]

    def test_duplicate_slugs_resolve_once(self, registry: InMemoryMetricRegistry) -> None:
        """Repeated slugs do not duplicate definitions."""
        result = validate(registry, QueryPlan(metrics=["net_sales", "net_sales"]))

        assert len(result.metrics) == 1

    def test_required_dimension_present(self, registry: InMemoryMetricRegistry) -> None:
        """utilization_rate is valid once date is selected."""
        result = validate(
            registry, QueryPlan(metrics=["utilization_rate"], dimensions=["date"])
        )

        assert result.valid

    def test_definitions_carry_trusted_sql(self, registry: InMemoryMetricRegistry) -> None:
        """Registry SQL is marked as trusted."""
        result = validate(registry, QueryPlan(metrics=["member_rounds"]))

        metric = result.metrics[0]
        assert isinstance(metric.sql_expression, TrustedSql)
        assert isinstance(metric.sql_filter, TrustedSql)


# -----------------------------
# Unknown / Inactive Tests
# -----------------------------


class TestUnknownSlugs:
    """Tests for unknown or inactive slugs."""

    def test_unknown_metric(self, registry: InMemoryMetricRegistry) -> None:
        """Unknown metrics should be reported by slug."""
        result = validate(registry, QueryPlan(metrics=["bad_slug"]))

        assert not result.valid
        assert "Unknown metric: bad_slug" in result.errors
        assert result.metrics == ()

    def test_unknown_dimension(self, registry: InMemoryMetricRegistry) -> None:
        """Unknown dimensions should be reported by slug."""
        result = validate(registry, QueryPlan(metrics=["net_sales"], dimensions=["nope"]))

        assert not result.valid
        assert "Unknown dimension: nope" in result.errors

    def test_all_errors_collected(self, registry: InMemoryMetricRegistry) -> None:
        """Every problem is reported, not just the first."""
        result = validate(registry, QueryPlan(metrics=["a", "b"], dimensions=["c"]))

        assert len(result.errors) == 3

    def test_inactive_definitions(self) -> None:
        """Inactive metrics and dimensions are rejected."""
        registry = InMemoryMetricRegistry(
            metrics=[
                MetricDefinition(
                    slug="old_metric",
                    sql_expression="SUM(x)",
                    sql_table="rm_daily_sales",
                    is_active=False,
                )
            ],
            dimensions=[
                DimensionDefinition(
                    slug="old_dim",
                    sql_expression="y",
                    sql_table="rm_daily_sales",
                    is_active=False,
                )
            ],
        )

        result = validate(registry, QueryPlan(metrics=["old_metric"], dimensions=["old_dim"]))

        assert not result.valid
        assert "Metric is inactive: old_metric" in result.errors
        assert "Dimension is inactive: old_dim" in result.errors


# -----------------------------
# Compatibility Tests
# -----------------------------


class TestCompatibility:
    """Tests for metric/dimension relationships."""

    def test_missing_required_dimension(self, registry: InMemoryMetricRegistry) -> None:
        """utilization_rate without date is rejected."""
        result = validate(registry, QueryPlan(metrics=["utilization_rate"]))

        assert not result.valid
        assert any("requires" in e and "date" in e for e in result.errors)

    def test_incompatible_metrics_reported_once(self) -> None:
        """A symmetric incompatibility is reported once per pair."""
        registry = InMemoryMetricRegistry(
            metrics=[
                MetricDefinition(
                    slug="a",
                    sql_expression="SUM(a)",
                    sql_table="t",
                    incompatible_with=("b",),
                ),
                MetricDefinition(
                    slug="b",
                    sql_expression="SUM(b)",
                    sql_table="t",
                    incompatible_with=("a",),
                ),
            ],
            dimensions=[],
        )

        result = validate(registry, QueryPlan(metrics=["a", "b"]))

        assert result.errors == ("Metric 'a' is incompatible with 'b'",)


# -----------------------------
# Lens Tests
# -----------------------------


class TestLenses:
    """Tests for lens restrictions."""

    def test_metric_outside_lens(self, registry: InMemoryMetricRegistry) -> None:
        """net_sales is not part of the golf operations lens."""
        result = validate(
            registry,
            QueryPlan(metrics=["net_sales"], dimensions=["date"]),
            lens_slug="golf_operations",
        )

        assert not result.valid
        assert any("not allowed in lens" in e for e in result.errors)

    def test_dimension_outside_lens(self, registry: InMemoryMetricRegistry) -> None:
        """location is not part of the golf operations lens."""
        result = validate(
            registry,
            QueryPlan(metrics=["rounds_played"], dimensions=["location"]),
            lens_slug="golf_operations",
        )

        assert "Dimension 'location' is not allowed in lens 'golf_operations'" in result.errors

    def test_lens_without_dimension_restriction(self, registry: InMemoryMetricRegistry) -> None:
        """A lens with no dimension list allows any dimension."""
        result = validate(
            registry,
            QueryPlan(metrics=["net_sales"], dimensions=["location"]),
            lens_slug="sales",
        )

        assert result.valid

    def test_repeated_slug_outside_lens_reported_once(self, registry: InMemoryMetricRegistry) -> None:
        """A slug listed twice yields a single lens error."""
        result = validate(
            registry,
            QueryPlan(metrics=["net_sales", "net_sales"], dimensions=["location", "location"]),
            lens_slug="golf_operations",
        )

        assert result.errors == (
            "Metric 'net_sales' is not allowed in lens 'golf_operations'",
            "Dimension 'location' is not allowed in lens 'golf_operations'",
        )

    def test_unknown_lens(self, registry: InMemoryMetricRegistry) -> None:
        """An unknown lens is an error."""
        result = validate(registry, QueryPlan(metrics=["net_sales"]), lens_slug="ghost")

        assert "Unknown lens: ghost" in result.errors

    def test_lens_accepts_list_arguments(self) -> None:
        """Lens allow-lists are normalized to tuples."""
        lens = LensDefinition(slug="l", allowed_metrics=["a"], allowed_dimensions=["b"])

        assert lens.allowed_metrics == ("a",)
        assert lens.allowed_dimensions == ("b",)


# -----------------------------
# Filter & Sort Tests
# -----------------------------


class TestFilterOperators:
    """Tests for operator/data type checks."""

    def test_like_on_string_dimension(self, registry: InMemoryMetricRegistry) -> None:
        """like is allowed on string dimensions."""
        plan = QueryPlan(
            metrics=["net_sales"],
            dimensions=["location"],
            filters=[FilterClause(dimension_slug="location", operator=FilterOperator.LIKE, value="Main")],
        )

        assert validate(registry, plan).valid

    def test_like_on_date_dimension(self, registry: InMemoryMetricRegistry) -> None:
        """like is not allowed on date dimensions."""
        plan = QueryPlan(
            metrics=["net_sales"],
            dimensions=["date"],
            filters=[FilterClause(dimension_slug="date", operator=FilterOperator.LIKE, value="2026")],
        )

        result = validate(registry, plan)

        assert not result.valid
        assert "Operator 'like' not allowed for date dimension 'date'" in result.errors

    def test_unselected_filter_dimension_not_checked(self, registry: InMemoryMetricRegistry) -> None:
        """Filters on unselected dimensions are left for the compiler to drop."""
        plan = QueryPlan(
            metrics=["net_sales"],
            dimensions=["date"],
            filters=[FilterClause(dimension_slug="location", operator=FilterOperator.EQ, value="x")],
        )

        assert validate(registry, plan).valid

    def test_sort_on_unselected_slug(self, registry: InMemoryMetricRegistry) -> None:
        """Sort keys must be selected metrics or dimensions."""
        plan = QueryPlan(
            metrics=["net_sales"],
            dimensions=["date"],
            sort=[SortSpec(metric_slug="order_count")],
        )

        result = validate(registry, plan)

        assert "Sort key 'order_count' is not a selected metric or dimension" in result.errors

    def test_sort_on_dimension(self, registry: InMemoryMetricRegistry) -> None:
        """Sorting by a selected dimension is allowed."""
        plan = QueryPlan(
            metrics=["net_sales"],
            dimensions=["location"],
            sort=[SortSpec(metric_slug="location")],
        )

        assert validate(registry, plan).valid


# -----------------------------
# Catalog Tests
# -----------------------------


class TestCatalog:
    """Tests for the default catalog contents."""

    def test_list_metrics_by_domain(self, registry: InMemoryMetricRegistry) -> None:
        golf = registry.list_metrics(domain="golf")

        assert "rounds_played" in golf
        assert "net_sales" not in golf

    def test_time_dimension_granularities(self, registry: InMemoryMetricRegistry) -> None:
        date_dim = registry.get_dimension("date")

        assert date_dim is not None
        assert date_dim.is_time_dimension
        assert date_dim.time_granularities == ("day", "week", "month")

    def test_non_time_dimension_has_no_granularities(self) -> None:
        dim = DimensionDefinition(
            slug="x",
            sql_expression="x",
            sql_table="t",
            time_granularities=("day",),
        )

        assert dim.time_granularities is None

    def test_every_metric_table_is_reporting_table(self, registry: InMemoryMetricRegistry) -> None:
        for slug in registry.list_metrics():
            metric = registry.get_metric(slug)
            assert metric is not None
            assert metric.sql_table.startswith("rm_")
