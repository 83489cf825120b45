"""
Registry definitions for the semantic layer.

This module defines:
- Which metrics exist and the aggregate SQL behind them
- Which dimensions exist and the column expression behind them
- Which lenses narrow the catalog for a given audience

Definitions are owned by the registry and are immutable per call.
"""

from dataclasses import dataclass
from enum import Enum


class TrustedSql(str):
    """
    SQL text controlled by the registry, never by a caller.

    Only values of this type may be rendered verbatim into a compiled
    query. Caller-supplied values are always bound as parameters.
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return f"TrustedSql({str.__repr__(self)})"


def _trusted(value: str | None) -> TrustedSql | None:
    if value is None or isinstance(value, TrustedSql):
        return value
    return TrustedSql(value)


# -----------------------------
# Data Types
# -----------------------------


class MetricDataType(str, Enum):
    """Presentation type of a metric value."""

    CURRENCY = "currency"
    NUMBER = "number"
    PERCENT = "percent"
    DURATION = "duration"


class DimensionDataType(str, Enum):
    """SQL data type of a dimension column."""

    STRING = "string"
    NUMERIC = "numeric"
    DATE = "date"
    TIMESTAMP = "timestamp"
    BOOLEAN = "boolean"


# -----------------------------
# Metric & Dimension Metadata
# -----------------------------


@dataclass(frozen=True)
class MetricDefinition:
    """A named, pre-aggregated business measure."""

    slug: str
    sql_expression: TrustedSql  # aggregate (e.g. "SUM(net_sales)")
    sql_table: TrustedSql  # reporting table (e.g. "rm_daily_sales")
    sql_filter: TrustedSql | None = None  # ANDed into WHERE when selected
    display_name: str = ""
    description: str = ""
    domain: str = "core"
    data_type: MetricDataType = MetricDataType.NUMBER
    format_pattern: str | None = None
    unit: str | None = None
    requires_dimensions: tuple[str, ...] = ()
    incompatible_with: tuple[str, ...] = ()
    is_active: bool = True
    is_experimental: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "sql_expression", _trusted(self.sql_expression))
        object.__setattr__(self, "sql_table", _trusted(self.sql_table))
        object.__setattr__(self, "sql_filter", _trusted(self.sql_filter))
        object.__setattr__(self, "requires_dimensions", tuple(self.requires_dimensions))
        object.__setattr__(self, "incompatible_with", tuple(self.incompatible_with))


@dataclass(frozen=True)
class DimensionDefinition:
    """A named grouping/filtering attribute."""

    slug: str
    sql_expression: TrustedSql  # column or expression (e.g. "business_date")
    sql_table: TrustedSql
    sql_data_type: DimensionDataType = DimensionDataType.STRING
    is_time_dimension: bool = False
    time_granularities: tuple[str, ...] | None = None  # e.g. ("day", "week", "month")
    display_name: str = ""
    is_active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "sql_expression", _trusted(self.sql_expression))
        object.__setattr__(self, "sql_table", _trusted(self.sql_table))
        if not self.is_time_dimension:
            object.__setattr__(self, "time_granularities", None)
        elif self.time_granularities is not None:
            object.__setattr__(self, "time_granularities", tuple(self.time_granularities))


@dataclass(frozen=True)
class LensDefinition:
    """A named view of the catalog restricting metrics and dimensions."""

    slug: str
    display_name: str = ""
    allowed_metrics: tuple[str, ...] | None = None  # None = unrestricted
    allowed_dimensions: tuple[str, ...] | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        if self.allowed_metrics is not None:
            object.__setattr__(self, "allowed_metrics", tuple(self.allowed_metrics))
        if self.allowed_dimensions is not None:
            object.__setattr__(self, "allowed_dimensions", tuple(self.allowed_dimensions))


# -----------------------------
# Validation Result
# -----------------------------


@dataclass(frozen=True)
class PlanValidationResult:
    """Outcome of a registry validation call."""

    valid: bool
    errors: tuple[str, ...] = ()
    metrics: tuple[MetricDefinition, ...] = ()
    dimensions: tuple[DimensionDefinition, ...] = ()

    # Registries may hand back lists
    def __post_init__(self) -> None:
        object.__setattr__(self, "errors", tuple(self.errors))
        object.__setattr__(self, "metrics", tuple(self.metrics))
        object.__setattr__(self, "dimensions", tuple(self.dimensions))
