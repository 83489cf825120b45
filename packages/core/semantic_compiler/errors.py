"""Error types raised by the semantic compiler."""

from enum import Enum


class CompilerErrorCode(str, Enum):
    """Stable, machine-readable failure codes."""

    NO_METRICS = "NO_METRICS"
    INVALID_PLAN = "INVALID_PLAN"
    PLAN_VALIDATION_ERROR = "PLAN_VALIDATION_ERROR"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    DATE_RANGE_TOO_LARGE = "DATE_RANGE_TOO_LARGE"
    FILTER_EMPTY_VALUES = "FILTER_EMPTY_VALUES"


class CompilerError(Exception):
    """Raised when a plan cannot be compiled into a safe query."""

    def __init__(self, code: CompilerErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message}
