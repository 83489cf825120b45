"""Explainability module for compiled semantic queries."""

from packages.core.explainability.builder import (
    ExplainabilityBuilder,
    QueryExplanation,
)

__all__ = [
    "ExplainabilityBuilder",
    "QueryExplanation",
]
