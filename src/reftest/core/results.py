"""Result data structures produced by the comparator and the test runner."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from .models import RenderResult, TestCase

PASSED = "passed"
FAILED = "failed"
ERROR = "error"

SKIP_NO_REFERENCE = "NoReference"
SKIP_REFERENCE_NOT_FOUND = "ReferenceNotFound"
SKIP_UNREADABLE = "Unreadable"


@dataclass(frozen=True)
class ComparisonOutcome:
    """Outcome of comparing the renders of one test case."""

    test_case: Optional[TestCase]
    verdict: str
    mismatch_ratio: float
    mismatched: int = 0
    total: int = 0
    tolerance: float = 0.0
    noise_threshold: int = 2
    diff_image: Optional[RenderResult] = field(default=None, compare=False, repr=False)
    diff_path: Optional[Path] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    duration_s: float = 0.0

    @property
    def passed(self) -> bool:
        return self.verdict == PASSED

    @property
    def ratio_defined(self) -> bool:
        return not math.isnan(self.mismatch_ratio)


@dataclass(frozen=True)
class SkippedFixture:
    """A discovered document that did not yield a test case."""

    path: Path
    reason: str
    detail: str = ""


@dataclass(frozen=True)
class Report:
    """Ordered outcomes of a run; order equals discovery order."""

    outcomes: Tuple[ComparisonOutcome, ...]
    skipped: Tuple[SkippedFixture, ...] = ()
    duration_s: float = 0.0

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def passed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.verdict == PASSED)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.verdict == FAILED)

    @property
    def errors(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.verdict == ERROR)

    @property
    def exit_code(self) -> int:
        if self.outcomes and self.passed == self.total:
            return 0
        return 1
