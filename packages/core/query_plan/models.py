"""
Query plan models for the semantic metrics compiler.

These models define the ONLY structured format a caller may submit.
They carry metric and dimension slugs, never SQL. Every identifier
that reaches the generated query is resolved through the registry.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


# -----------------------------
# Enums (restrict caller input)
# -----------------------------


class FilterOperator(str, Enum):
    """Supported filter operators."""

    EQ = "eq"
    IN = "in"
    GTE = "gte"
    LTE = "lte"
    BETWEEN = "between"
    LIKE = "like"


class TimeGranularity(str, Enum):
    """Calendar bucket sizes for time dimensions."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class SortDirection(str, Enum):
    """Sort direction for ORDER BY clauses."""

    ASC = "asc"
    DESC = "desc"


class PlanModel(BaseModel):
    """Base for caller-facing models: immutable, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )


# -----------------------------
# Plan Nodes
# -----------------------------


class FilterClause(PlanModel):
    """
    A single filter on a dimension.

    Examples:
        location = 'loc_123'               (eq, value)
        location IN ('loc_1', 'loc_2')     (in, values)
        date BETWEEN '2026-01-01' AND ...  (between, range_start/range_end)
    """

    dimension_slug: str
    operator: FilterOperator
    value: Any = None
    values: list[Any] | None = None
    range_start: Any = None
    range_end: Any = None

    @model_validator(mode="after")
    def check_operands(self) -> "FilterClause":
        """Require exactly the operand(s) that match the operator."""
        has_value = self.value is not None
        has_values = self.values is not None
        has_range = self.range_start is not None or self.range_end is not None

        match self.operator:
            case FilterOperator.IN:
                # An empty list is allowed here; the compiler rejects it.
                if not has_values or has_value or has_range:
                    raise ValueError(
                        f"'in' filter on '{self.dimension_slug}' requires 'values' only"
                    )
            case FilterOperator.BETWEEN:
                if self.range_start is None or self.range_end is None:
                    raise ValueError(
                        f"'between' filter on '{self.dimension_slug}' requires "
                        "'rangeStart' and 'rangeEnd'"
                    )
                if has_value or has_values:
                    raise ValueError(
                        f"'between' filter on '{self.dimension_slug}' takes no 'value' or 'values'"
                    )
            case _:
                if not has_value or has_values or has_range:
                    raise ValueError(
                        f"'{self.operator.value}' filter on '{self.dimension_slug}' "
                        "requires 'value' only"
                    )
        return self


class DateRange(PlanModel):
    """
    Inclusive calendar date range.

    Bounds stay as raw strings; the compiler's date guardrail parses
    them so that bad input surfaces as a compiler error.
    """

    start: str
    end: str


class SortSpec(PlanModel):
    """ORDER BY entry. The slug may name a selected metric or dimension."""

    metric_slug: str
    direction: SortDirection = SortDirection.DESC


# -----------------------------
# Root Plan
# -----------------------------


class QueryPlan(PlanModel):
    """
    Root object describing which metrics to compute and how to slice them.

    An empty ``metrics`` list is a valid model; the compiler rejects it
    with its own error code before contacting the registry.
    """

    metrics: list[str] = Field(default_factory=list, description="Metric slugs")

    dimensions: list[str] = Field(
        default_factory=list,
        description="Dimension slugs to group by"
    )

    filters: list[FilterClause] = Field(
        default_factory=list,
        description="Filter conditions on selected dimensions"
    )

    date_range: DateRange | None = None

    time_granularity: TimeGranularity | None = None

    sort: list[SortSpec] | None = None

    limit: int | None = Field(
        default=None,
        description="Requested row cap; clamped by the compiler"
    )
