"""Semantic compiler - turns query plans into safe parameterized SQL."""

from .compiler import PlanCompiler, compile_plan, resolve_order
from .errors import CompilerError, CompilerErrorCode
from .guardrails import CheckedDateRange, check_date_range, clamp_limit
from .models import CompiledQuery, CompilerInput
from .settings import CompilerSettings, get_compiler_settings

__all__ = [
    "CheckedDateRange",
    "CompiledQuery",
    "CompilerError",
    "CompilerErrorCode",
    "CompilerInput",
    "CompilerSettings",
    "PlanCompiler",
    "check_date_range",
    "clamp_limit",
    "compile_plan",
    "get_compiler_settings",
    "resolve_order",
]
