"""Test runner orchestrating render adapters, comparisons and diff output."""
from __future__ import annotations

import dataclasses
import logging
import re
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Sequence

from reftest.imaging import save_png

from .comparator import DEFAULT_NOISE_THRESHOLD, DEFAULT_TOLERANCE, compare, error_outcome
from .errors import CaseTimeoutError
from .models import TestCase, Viewport
from .results import FAILED, PASSED, ComparisonOutcome, Report, SkippedFixture

log = logging.getLogger(__name__)

ResultCallback = Callable[[ComparisonOutcome, int, int], None]


@dataclasses.dataclass
class _CaseHandle:
    index: int
    case: TestCase
    cancel: threading.Event = dataclasses.field(default_factory=threading.Event)
    started: Optional[float] = None


class TestRunner:
    """Executes test cases on a worker pool and aggregates a :class:`Report`.

    Each case is isolated: render, dimension and timeout failures become
    ``error`` outcomes and never abort the run. Outcomes are reported in
    discovery order regardless of completion order.
    """

    __test__ = False  # not a pytest class

    def __init__(
        self,
        adapter,
        *,
        viewport: Viewport = Viewport(),
        tolerance: float = DEFAULT_TOLERANCE,
        noise_threshold: int = DEFAULT_NOISE_THRESHOLD,
        timeout_s: Optional[float] = None,
        workers: int = 1,
        output_dir: Optional[Path] = None,
        poll_interval_s: float = 0.02,
    ) -> None:
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        if timeout_s is not None and timeout_s <= 0:
            raise ValueError(f"timeout must be positive, got {timeout_s}")
        self._adapter = adapter
        self._viewport = viewport
        self._tolerance = tolerance
        self._noise_threshold = noise_threshold
        self._timeout_s = timeout_s
        self._workers = workers
        self._output_dir = Path(output_dir) if output_dir else None
        self._poll_interval_s = poll_interval_s

    def run(
        self,
        cases: Iterable[TestCase],
        *,
        skipped: Iterable[SkippedFixture] = (),
        on_result: Optional[ResultCallback] = None,
    ) -> Report:
        start = time.perf_counter()
        handles = [_CaseHandle(index=index, case=case) for index, case in enumerate(cases)]
        outcomes = self._execute(handles, on_result)
        return Report(
            outcomes=tuple(outcomes[handle.index] for handle in handles),
            skipped=tuple(skipped),
            duration_s=time.perf_counter() - start,
        )

    def _execute(
        self, handles: Sequence[_CaseHandle], on_result: Optional[ResultCallback]
    ) -> Dict[int, ComparisonOutcome]:
        outcomes: Dict[int, ComparisonOutcome] = {}
        total = len(handles)
        if not handles:
            return outcomes

        def record(handle: _CaseHandle, outcome: ComparisonOutcome) -> None:
            outcomes[handle.index] = outcome
            if on_result:
                on_result(outcome, len(outcomes), total)

        pool = ThreadPoolExecutor(max_workers=min(self._workers, total), thread_name_prefix="reftest")
        futures: Dict[Future, _CaseHandle] = {}
        abandoned: list[Future] = []
        try:
            for handle in handles:
                futures[pool.submit(self._run_case, handle)] = handle
            pending = set(futures)
            while pending:
                done, pending = wait(pending, timeout=self._poll_interval_s, return_when=FIRST_COMPLETED)
                for future in done:
                    record(futures[future], future.result())
                expired = [future for future in pending if self._expired(futures[future])]
                for future in expired:
                    handle = futures[future]
                    handle.cancel.set()
                    pending.discard(future)
                    abandoned.append(future)
                    log.warning("case %s timed out after %.3fs", handle.case.id, self._timeout_s)
                    record(
                        handle,
                        self._error(
                            handle.case,
                            CaseTimeoutError(f"timed out after {self._timeout_s:.3f}s"),
                            time.monotonic() - (handle.started or time.monotonic()),
                        ),
                    )
        except BaseException:
            for handle in handles:
                handle.cancel.set()
            pool.shutdown(wait=False, cancel_futures=True)
            raise
        running = [futures[future].case.id for future in abandoned if not future.done()]
        if running:
            log.warning(
                "%d timed-out case(s) still running in the adapter (%s); "
                "the process exits once the adapter honors cancellation",
                len(running),
                ", ".join(running),
            )
        pool.shutdown(wait=not running, cancel_futures=True)
        return outcomes

    def _expired(self, handle: _CaseHandle) -> bool:
        if self._timeout_s is None or handle.started is None:
            return False
        # Small grace period so adapters enforcing their own budget report first.
        return time.monotonic() - handle.started > self._timeout_s + self._poll_interval_s * 5

    def _run_case(self, handle: _CaseHandle) -> ComparisonOutcome:
        handle.started = time.monotonic()
        case = handle.case
        try:
            if handle.cancel.is_set():
                raise CaseTimeoutError("cancelled before start")
            actual = self._adapter.render(
                case.test_path, self._viewport, timeout=self._remaining(handle), cancel=handle.cancel
            )
            expected = self._adapter.render(
                case.reference_path, self._viewport, timeout=self._remaining(handle), cancel=handle.cancel
            )
            tolerance, noise_threshold = self._thresholds(case, actual.width * actual.height)
            outcome = compare(actual, expected, tolerance, noise_threshold=noise_threshold, case=case)
            del actual, expected
            outcome = _apply_relation(outcome, case)
            outcome = self._store_diff(handle, outcome)
            return dataclasses.replace(outcome, duration_s=time.monotonic() - handle.started)
        except Exception as exc:
            log.debug("case %s errored", case.id, exc_info=True)
            return self._error(case, exc, time.monotonic() - handle.started)

    def _remaining(self, handle: _CaseHandle) -> Optional[float]:
        if self._timeout_s is None or handle.started is None:
            return None
        remaining = self._timeout_s - (time.monotonic() - handle.started)
        if remaining <= 0:
            raise CaseTimeoutError(f"timed out after {self._timeout_s:.3f}s")
        return remaining

    def _thresholds(self, case: TestCase, pixel_count: int) -> tuple[float, int]:
        tolerance = self._tolerance
        noise_threshold = self._noise_threshold
        if case.fuzzy is not None:
            if case.fuzzy.max_difference is not None:
                noise_threshold = case.fuzzy.max_difference
            if case.fuzzy.total_pixels is not None:
                tolerance = min(1.0, case.fuzzy.total_pixels / pixel_count)
        return tolerance, noise_threshold

    def _store_diff(self, handle: _CaseHandle, outcome: ComparisonOutcome) -> ComparisonOutcome:
        if self._output_dir is None:
            return outcome
        if outcome.diff_image is None or outcome.verdict == PASSED:
            return dataclasses.replace(outcome, diff_image=None)
        path = self._output_dir / diff_filename(handle.index, handle.case.id)
        save_png(outcome.diff_image, path)
        return dataclasses.replace(outcome, diff_image=None, diff_path=path)

    def _error(self, case: TestCase, exc: BaseException, duration_s: float) -> ComparisonOutcome:
        return error_outcome(
            case,
            exc,
            tolerance=self._tolerance,
            noise_threshold=self._noise_threshold,
            duration_s=duration_s,
        )


def _apply_relation(outcome: ComparisonOutcome, case: TestCase) -> ComparisonOutcome:
    if case.relation != "mismatch":
        return outcome
    verdict = PASSED if outcome.mismatch_ratio > outcome.tolerance else FAILED
    return dataclasses.replace(outcome, verdict=verdict)


def diff_filename(index: int, case_id: str) -> str:
    """Per-case unique diff image name."""

    sanitized = re.sub(r"[^A-Za-z0-9._-]+", "_", case_id).strip("._") or "case"
    return f"{index:04d}-{sanitized}.diff.png"

