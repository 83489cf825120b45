"""Query plan models - the caller-facing request format."""

from .models import (
    DateRange,
    FilterClause,
    FilterOperator,
    PlanModel,
    QueryPlan,
    SortDirection,
    SortSpec,
    TimeGranularity,
)

__all__ = [
    "DateRange",
    "FilterClause",
    "FilterOperator",
    "PlanModel",
    "QueryPlan",
    "SortDirection",
    "SortSpec",
    "TimeGranularity",
]
