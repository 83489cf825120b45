"""Semantic Registry - defines metrics, dimensions, lenses and plan validation."""

from .definitions import (
    DimensionDataType,
    DimensionDefinition,
    LensDefinition,
    MetricDataType,
    MetricDefinition,
    PlanValidationResult,
    TrustedSql,
)
from .registry import (
    ALLOWED_OPERATORS,
    InMemoryMetricRegistry,
    MetricRegistry,
    get_default_registry,
)

__all__ = [
    "ALLOWED_OPERATORS",
    "DimensionDataType",
    "DimensionDefinition",
    "InMemoryMetricRegistry",
    "LensDefinition",
    "MetricDataType",
    "MetricDefinition",
    "MetricRegistry",
    "PlanValidationResult",
    "TrustedSql",
    "get_default_registry",
]
