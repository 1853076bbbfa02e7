"""Core models and helpers exposed at the package level."""
from .comparator import compare, error_outcome
from .errors import (
    CaseTimeoutError,
    ConfigError,
    DimensionMismatchError,
    FatalRunError,
    MissingReferenceError,
    ReftestError,
    RenderError,
)
from .models import FuzzyAllowance, RenderResult, TestCase, Viewport
from .results import ComparisonOutcome, Report, SkippedFixture

__all__ = [
    "CaseTimeoutError",
    "ComparisonOutcome",
    "ConfigError",
    "DimensionMismatchError",
    "FatalRunError",
    "FuzzyAllowance",
    "MissingReferenceError",
    "ReftestError",
    "RenderError",
    "RenderResult",
    "Report",
    "SkippedFixture",
    "TestCase",
    "Viewport",
    "compare",
    "error_outcome",
]
