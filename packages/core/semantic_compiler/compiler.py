"""
Semantic Plan Compiler.

Transforms a CompilerInput into a single parameterized aggregate query
against the reporting tables.

Pipeline (fixed order):
    1. Pre-check          - reject plans with no metrics
    2. Registry           - resolve slugs into definitions (one awaited call)
    3. Tables             - primary table + cross-table warnings
    4. SELECT             - metrics, then dimensions (DATE_TRUNC when bucketed)
    5. WHERE              - tenant, location, date range, metric filters, plan filters
    6. GROUP BY           - same expressions as SELECT
    7. ORDER BY           - explicit sort, else time ASC / first metric DESC
    8. LIMIT              - clamped, always the last parameter

Only registry text (TrustedSql) is rendered verbatim; every caller value
is a bound parameter. SQL text and parameters come out of one SQLAlchemy
compilation, so placeholder order and parameter order always agree.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError
from sqlalchemy import column, func, literal, literal_column, select, table
from sqlalchemy.dialects.postgresql.base import PGDialect
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement, Grouping, quoted_name

from packages.core.query_plan.models import (
    FilterClause,
    FilterOperator,
    QueryPlan,
    SortDirection,
    SortSpec,
    TimeGranularity,
)
from packages.core.semantic_compiler.errors import CompilerError, CompilerErrorCode
from packages.core.semantic_compiler.guardrails import (
    CheckedDateRange,
    check_date_range,
    clamp_limit,
)
from packages.core.semantic_compiler.models import CompiledQuery, CompilerInput
from packages.core.semantic_compiler.settings import (
    CompilerSettings,
    get_compiler_settings,
)
from packages.core.semantic_registry.definitions import (
    DimensionDefinition,
    MetricDefinition,
    TrustedSql,
)
from packages.core.semantic_registry.registry import (
    MetricRegistry,
    get_default_registry,
)

logger = logging.getLogger(__name__)

# PostgreSQL with positional $1..$n placeholders
_DIALECT = PGDialect(paramstyle="numeric_dollar")


# -----------------------------
# Per-compilation state
# -----------------------------


@dataclass
class _Resolved:
    """Definitions returned by the registry for one plan."""

    metrics: list[MetricDefinition]
    dimensions: list[DimensionDefinition]
    primary_table: str
    join_tables: list[str] = field(default_factory=list)


def _quoted(name: str) -> quoted_name:
    """Always-quoted identifier for output aliases."""
    return quoted_name(name, quote=True)


def _trusted_sql(fragment: TrustedSql) -> ColumnElement:
    """Render registry-owned SQL verbatim."""
    if not isinstance(fragment, TrustedSql):
        raise TypeError("Only registry-owned SQL may be rendered as text")
    return literal_column(str(fragment))


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so the caller's text matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def resolve_order(
    plan: QueryPlan,
    metrics: Sequence[MetricDefinition],
    dimensions: Sequence[DimensionDefinition],
) -> list[SortSpec]:
    """
    Effective ORDER BY for a plan.

    Explicit sort wins; otherwise the first time dimension ascending,
    otherwise the first metric descending.
    """
    if plan.sort:
        return list(plan.sort)

    for dim in dimensions:
        if dim.is_time_dimension:
            return [SortSpec(metric_slug=dim.slug, direction=SortDirection.ASC)]

    if not metrics:
        return []
    return [SortSpec(metric_slug=metrics[0].slug, direction=SortDirection.DESC)]


# -----------------------------
# Compiler
# -----------------------------


class PlanCompiler:
    """
    Compiles query plans into parameterized SQL.

    Holds no mutable state; one instance can serve concurrent
    compilations.
    """

    def __init__(
        self,
        registry: MetricRegistry | None = None,
        settings: CompilerSettings | None = None,
    ):
        """
        Initialize the compiler.

        Args:
            registry: Registry used to resolve metric and dimension slugs.
                     Uses the default in-memory registry if not provided.
            settings: Guardrail and column settings.
                     Uses cached environment settings if not provided.
        """
        self._registry = registry or get_default_registry()
        self._settings = settings or get_compiler_settings()

    async def compile(self, compiler_input: CompilerInput | Mapping[str, Any]) -> CompiledQuery:
        """
        Compile a plan into a parameterized query.

        Args:
            compiler_input: A CompilerInput, or a mapping in its camelCase
                wire format.

        Returns:
            The compiled query with its bound parameters and warnings.

        Raises:
            CompilerError: If the plan is rejected at any stage.
        """
        compiler_input = self._coerce_input(compiler_input)
        plan = compiler_input.plan

        # 1. Pre-check
        if not plan.metrics:
            raise CompilerError(
                CompilerErrorCode.NO_METRICS,
                "At least one metric is required",
            )

        logger.debug(
            "Compiling plan: metrics=%s dimensions=%s filters=%d",
            plan.metrics,
            plan.dimensions,
            len(plan.filters),
        )

        # 2. Registry validation
        resolved = await self._validate(compiler_input)
        warnings: list[str] = []

        # 3. Tables
        self._detect_cross_table(resolved, warnings)

        # 4. SELECT + 6. GROUP BY expressions
        select_columns, group_by = self._build_projection(plan, resolved, warnings)

        # 5. WHERE
        where = self._build_where(compiler_input, resolved, warnings)

        # 7. ORDER BY
        order_by = self._build_order_by(plan, resolved)

        # 8. LIMIT
        limit = clamp_limit(
            plan.limit,
            default=self._settings.default_row_limit,
            ceiling=self._settings.absolute_max_rows,
        )
        if plan.limit is not None and limit != plan.limit:
            logger.info("Requested limit %d clamped to %d", plan.limit, limit)

        stmt = self._assemble(resolved.primary_table, select_columns, where, group_by, order_by, limit)
        sql, params = self._render(stmt)

        if warnings:
            logger.info("Plan compiled with %d warning(s): %s", len(warnings), "; ".join(warnings))
        logger.debug("Compiled query against %s with %d parameter(s)", resolved.primary_table, len(params))

        return CompiledQuery(
            sql=sql,
            params=params,
            meta_defs=tuple(resolved.metrics),
            dimension_defs=tuple(resolved.dimensions),
            primary_table=resolved.primary_table,
            join_tables=tuple(resolved.join_tables),
            warnings=tuple(warnings),
            limit=limit,
        )

    # -------------------------
    # Input & Registry
    # -------------------------

    def _coerce_input(self, compiler_input: CompilerInput | Mapping[str, Any]) -> CompilerInput:
        if isinstance(compiler_input, CompilerInput):
            return compiler_input
        try:
            return CompilerInput.model_validate(compiler_input)
        except ValidationError as exc:
            raise CompilerError(
                CompilerErrorCode.INVALID_PLAN,
                f"Invalid query plan: {exc}",
            ) from exc

    async def _validate(self, compiler_input: CompilerInput) -> _Resolved:
        """Resolve the plan through the registry."""
        result = await self._registry.validate_plan(
            compiler_input.plan,
            lens_slug=compiler_input.lens_slug,
        )
        if not result.valid:
            message = "; ".join(result.errors) or "Plan failed registry validation"
            logger.warning("Registry rejected plan: %s", message)
            raise CompilerError(CompilerErrorCode.PLAN_VALIDATION_ERROR, message)

        if not result.metrics:
            raise CompilerError(
                CompilerErrorCode.PLAN_VALIDATION_ERROR,
                "Registry resolved no metrics for the plan",
            )

        return _Resolved(
            metrics=list(result.metrics),
            dimensions=list(result.dimensions),
            primary_table=str(result.metrics[0].sql_table),
        )

    # -------------------------
    # Tables
    # -------------------------

    def _detect_cross_table(self, resolved: _Resolved, warnings: list[str]) -> None:
        """Record tables outside the primary table. No JOIN is generated."""
        references: list[tuple[str, str, str]] = [
            ("metric", m.slug, str(m.sql_table)) for m in resolved.metrics
        ] + [
            ("dimension", d.slug, str(d.sql_table)) for d in resolved.dimensions
        ]

        for kind, slug, sql_table in references:
            if sql_table == resolved.primary_table:
                continue
            if sql_table not in resolved.join_tables:
                resolved.join_tables.append(sql_table)
            warnings.append(f"Cross-table {kind} '{slug}' references {sql_table}")

    # -------------------------
    # SELECT / GROUP BY
    # -------------------------

    def _build_projection(
        self,
        plan: QueryPlan,
        resolved: _Resolved,
        warnings: list[str],
    ) -> tuple[list[ColumnElement], list[ColumnElement]]:
        """Build SELECT columns and matching GROUP BY expressions."""
        select_columns: list[ColumnElement] = []
        group_by: list[ColumnElement] = []

        for metric in resolved.metrics:
            select_columns.append(
                _trusted_sql(metric.sql_expression).label(_quoted(metric.slug))
            )

        granularity = plan.time_granularity
        if granularity is not None and not any(d.is_time_dimension for d in resolved.dimensions):
            warnings.append(
                f"Time granularity '{granularity.value}' ignored: no time dimension selected"
            )

        for dim in resolved.dimensions:
            expr = self._dimension_expression(dim, granularity, warnings)
            select_columns.append(expr.label(_quoted(dim.slug)))
            group_by.append(expr)

        return select_columns, group_by

    def _dimension_expression(
        self,
        dim: DimensionDefinition,
        granularity: TimeGranularity | None,
        warnings: list[str],
    ) -> ColumnElement:
        """Dimension expression, truncated to the bucket when requested."""
        expr = _trusted_sql(dim.sql_expression)
        if (
            granularity is None
            or not dim.is_time_dimension
            or granularity == TimeGranularity.DAY
        ):
            return expr

        if dim.time_granularities is not None and granularity.value not in dim.time_granularities:
            warnings.append(
                f"Time dimension '{dim.slug}' does not list granularity '{granularity.value}'"
            )
        # granularity is an enum member, never caller text
        return func.DATE_TRUNC(literal_column(f"'{granularity.value}'"), expr)

    # -------------------------
    # WHERE
    # -------------------------

    def _build_where(
        self,
        compiler_input: CompilerInput,
        resolved: _Resolved,
        warnings: list[str],
    ) -> list[ColumnElement]:
        """Build WHERE predicates in parameter order."""
        plan = compiler_input.plan
        settings = self._settings
        clauses: list[ColumnElement] = []

        # Tenant isolation: always first
        clauses.append(column(settings.tenant_column) == compiler_input.tenant_id)

        if compiler_input.location_id is not None:
            clauses.append(column(settings.location_column) == compiler_input.location_id)

        date_range = self._check_date_range(compiler_input, warnings)
        if date_range is not None:
            time_column = self._time_column(resolved)
            clauses.append(
                time_column.between(date_range.start.isoformat(), date_range.end.isoformat())
            )

        seen_fragments: set[str] = set()
        for metric in resolved.metrics:
            if metric.sql_filter and metric.sql_filter not in seen_fragments:
                seen_fragments.add(metric.sql_filter)
                clauses.append(Grouping(_trusted_sql(metric.sql_filter)))

        for f in plan.filters:
            if f.operator == FilterOperator.IN and not f.values:
                raise CompilerError(
                    CompilerErrorCode.FILTER_EMPTY_VALUES,
                    f"Filter on '{f.dimension_slug}' uses 'in' with no values",
                )

        selected = {d.slug: d for d in resolved.dimensions}
        for f in plan.filters:
            dim = selected.get(f.dimension_slug)
            if dim is None:
                warnings.append(
                    f"Filter on '{f.dimension_slug}' skipped: dimension is not selected"
                )
                continue
            clauses.append(self._resolve_filter(f, dim))

        return clauses

    def _check_date_range(
        self, compiler_input: CompilerInput, warnings: list[str]
    ) -> CheckedDateRange | None:
        date_range = compiler_input.plan.date_range
        if date_range is None:
            warnings.append("No date range supplied; query may scan all history")
            return None

        max_days = compiler_input.max_date_range_days or self._settings.default_max_date_range_days
        return check_date_range(date_range, max_days)

    def _time_column(self, resolved: _Resolved) -> ColumnElement:
        """Column the date range applies to."""
        for dim in resolved.dimensions:
            if dim.is_time_dimension and dim.sql_table == resolved.primary_table:
                return _trusted_sql(dim.sql_expression)
        return column(self._settings.default_time_column)

    def _resolve_filter(self, f: FilterClause, dim: DimensionDefinition) -> ColumnElement:
        """Translate a filter clause into a bound predicate."""
        expr = _trusted_sql(dim.sql_expression)

        match f.operator:
            case FilterOperator.EQ:
                return expr == f.value
            case FilterOperator.IN:
                return expr.in_([literal(v) for v in f.values])
            case FilterOperator.GTE:
                return expr >= f.value
            case FilterOperator.LTE:
                return expr <= f.value
            case FilterOperator.BETWEEN:
                return expr.between(f.range_start, f.range_end)
            case FilterOperator.LIKE:
                return expr.ilike(f"%{_escape_like(str(f.value))}%")
            case _:
                raise CompilerError(
                    CompilerErrorCode.INVALID_PLAN,
                    f"Unsupported filter operator: {f.operator}",
                )

    # -------------------------
    # ORDER BY
    # -------------------------

    def _build_order_by(self, plan: QueryPlan, resolved: _Resolved) -> list[ColumnElement]:
        """ORDER BY the output aliases."""
        return [
            self._order(order.metric_slug, order.direction)
            for order in resolve_order(plan, resolved.metrics, resolved.dimensions)
        ]

    def _order(self, alias: str, direction: SortDirection) -> ColumnElement:
        col = column(_quoted(alias))
        return col.desc() if direction == SortDirection.DESC else col.asc()

    # -------------------------
    # Assembly
    # -------------------------

    def _assemble(
        self,
        primary_table: str,
        select_columns: list[ColumnElement],
        where: list[ColumnElement],
        group_by: list[ColumnElement],
        order_by: list[ColumnElement],
        limit: int,
    ) -> Select:
        schema, _, name = primary_table.rpartition(".")
        from_table = table(name, schema=schema or None)

        stmt = select(*select_columns).select_from(from_table).where(*where)
        if group_by:
            stmt = stmt.group_by(*group_by)
        return stmt.order_by(*order_by).limit(limit)

    def _render(self, stmt: Select) -> tuple[str, tuple[Any, ...]]:
        """Compile to text and positional parameters in placeholder order."""
        compiled = stmt.compile(dialect=_DIALECT)
        bound = compiled.params
        return str(compiled), tuple(bound[name] for name in compiled.positiontup)


async def compile_plan(
    compiler_input: CompilerInput | Mapping[str, Any],
    registry: MetricRegistry | None = None,
    settings: CompilerSettings | None = None,
) -> CompiledQuery:
    """Compile a plan with a one-off compiler."""
    return await PlanCompiler(registry=registry, settings=settings).compile(compiler_input)
