from __future__ import annotations

import math
import threading
import time
from pathlib import Path
from typing import Dict, Optional

import pytest

from fixture_utils import swatch_pixels
from reftest.adapters import RenderAdapter
from reftest.core import CaseTimeoutError, FuzzyAllowance, RenderError, RenderResult, TestCase, Viewport
from reftest.core.runner import TestRunner, diff_filename
from reftest.imaging import load_png


class MappingAdapter(RenderAdapter):
    """Fake adapter serving renders keyed by document name."""

    name = "mapping"

    def __init__(
        self,
        renders: Dict[str, RenderResult],
        *,
        delays: Optional[Dict[str, float]] = None,
        failures: Optional[Dict[str, Exception]] = None,
    ) -> None:
        self._renders = renders
        self._delays = delays or {}
        self._failures = failures or {}
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def render(self, document, viewport, *, timeout=None, cancel=None):
        name = Path(document).name
        with self._lock:
            self.calls.append(name)
        delay = self._delays.get(name, 0.0)
        deadline = time.monotonic() + delay
        while time.monotonic() < deadline:
            if cancel is not None and cancel.is_set():
                raise CaseTimeoutError(f"cancelled {name}")
            time.sleep(0.005)
        if name in self._failures:
            raise self._failures[name]
        return self._renders[name]


class StuckAdapter(RenderAdapter):
    """Fake adapter that ignores its time budget but honors cancellation."""

    def __init__(self, stuck: str, render: RenderResult) -> None:
        self._stuck = stuck
        self._render = render

    def render(self, document, viewport, *, timeout=None, cancel=None):
        if Path(document).name == self._stuck:
            assert cancel is not None
            cancel.wait(5.0)
            raise CaseTimeoutError("cancelled")
        return self._render


class BlockingAdapter(RenderAdapter):
    """Fake adapter whose ``slow*`` documents block until cancelled."""

    def __init__(self, renders: Dict[str, RenderResult]) -> None:
        self._renders = renders
        self.cancel_events: Dict[str, threading.Event] = {}
        self.blocked = threading.Event()
        self._lock = threading.Lock()

    def render(self, document, viewport, *, timeout=None, cancel=None):
        name = Path(document).name
        if name.startswith("slow"):
            with self._lock:
                self.cancel_events[name] = cancel
            self.blocked.set()
            cancel.wait(5.0)
            raise CaseTimeoutError("cancelled")
        # finish only once a slow case is in flight
        self.blocked.wait(5.0)
        return self._renders[name]


def _case(name: str, reference: str, relation: str = "match", fuzzy: Optional[FuzzyAllowance] = None) -> TestCase:
    return TestCase(
        id=name,
        test_path=Path("/fixtures") / name,
        reference_path=Path("/fixtures") / reference,
        relation=relation,
        fuzzy=fuzzy,
    )


SWATCH = RenderResult(swatch_pixels(offset=(20, 30)))
SHIFTED = RenderResult(swatch_pixels(offset=(21, 30)))


def test_runner_passes_matching_renders() -> None:
    adapter = MappingAdapter({"t.html": SWATCH, "r.html": RenderResult(swatch_pixels())})
    report = TestRunner(adapter, viewport=Viewport(206, 165)).run([_case("t.html", "r.html")])
    assert report.total == 1
    outcome = report.outcomes[0]
    assert outcome.verdict == "passed"
    assert outcome.mismatch_ratio == 0.0
    assert report.exit_code == 0
    assert adapter.calls == ["t.html", "r.html"]


def test_runner_fails_shifted_swatch() -> None:
    adapter = MappingAdapter({"t.html": SHIFTED, "r.html": SWATCH})
    report = TestRunner(adapter).run([_case("t.html", "r.html")])
    assert report.outcomes[0].verdict == "failed"
    assert report.outcomes[0].mismatch_ratio > 0
    assert report.exit_code == 1


def test_reference_render_error_does_not_abort_run() -> None:
    adapter = MappingAdapter(
        {"a.html": SWATCH, "a-ref.html": SWATCH, "b.html": SWATCH, "c.html": SHIFTED, "c-ref.html": SWATCH},
        failures={"b-ref.html": RenderError("reference failed to load")},
    )
    cases = [_case("a.html", "a-ref.html"), _case("b.html", "b-ref.html"), _case("c.html", "c-ref.html")]
    report = TestRunner(adapter, workers=2).run(cases)
    assert [outcome.verdict for outcome in report.outcomes] == ["passed", "error", "failed"]
    errored = report.outcomes[1]
    assert errored.error_kind == "render"
    assert "reference failed to load" in (errored.error or "")
    assert math.isnan(errored.mismatch_ratio)
    assert report.errors == 1


def test_dimension_mismatch_becomes_error() -> None:
    adapter = MappingAdapter({"t.html": SWATCH, "r.html": RenderResult.solid(10, 10, (0, 0, 0, 255))})
    outcome = TestRunner(adapter).run([_case("t.html", "r.html")]).outcomes[0]
    assert outcome.verdict == "error"
    assert outcome.error_kind == "dimension"


def test_report_order_matches_discovery_order_under_concurrency() -> None:
    renders = {}
    delays = {}
    cases = []
    for index in range(6):
        renders[f"t{index}.html"] = SWATCH
        renders[f"r{index}.html"] = SWATCH
        # earlier cases finish last
        delays[f"t{index}.html"] = 0.02 * (6 - index)
        cases.append(_case(f"t{index}.html", f"r{index}.html"))
    completion: list[str] = []
    adapter = MappingAdapter(renders, delays=delays)
    report = TestRunner(adapter, workers=6).run(
        cases, on_result=lambda outcome, index, total: completion.append(outcome.test_case.id)
    )
    assert [outcome.test_case.id for outcome in report.outcomes] == [case.id for case in cases]
    assert completion != [case.id for case in cases]
    assert sorted(completion) == sorted(case.id for case in cases)


def test_timeout_records_error_without_blocking_other_cases() -> None:
    adapter = MappingAdapter(
        {"slow.html": SWATCH, "slow-ref.html": SWATCH, "fast.html": SWATCH, "fast-ref.html": SWATCH},
        delays={"slow.html": 2.0},
    )
    runner = TestRunner(adapter, workers=2, timeout_s=0.1)
    started = time.monotonic()
    report = runner.run([_case("slow.html", "slow-ref.html"), _case("fast.html", "fast-ref.html")])
    assert time.monotonic() - started < 1.5
    slow, fast = report.outcomes
    assert slow.verdict == "error"
    assert slow.error_kind == "timeout"
    assert fast.verdict == "passed"


def test_watchdog_cancels_adapter_ignoring_budget() -> None:
    adapter = StuckAdapter("stuck.html", SWATCH)
    runner = TestRunner(adapter, workers=2, timeout_s=0.05, poll_interval_s=0.01)
    report = runner.run([_case("stuck.html", "ref.html"), _case("ok.html", "ref.html")])
    assert report.outcomes[0].error_kind == "timeout"
    assert report.outcomes[1].verdict == "passed"


def test_runner_warns_about_adapters_ignoring_cancellation(caplog) -> None:
    class SleepingAdapter(RenderAdapter):
        def render(self, document, viewport, *, timeout=None, cancel=None):
            if Path(document).name == "sleepy.html":
                time.sleep(0.5)
            return SWATCH

    runner = TestRunner(SleepingAdapter(), workers=2, timeout_s=0.05, poll_interval_s=0.01)
    started = time.monotonic()
    with caplog.at_level("WARNING", logger="reftest.core.runner"):
        report = runner.run([_case("sleepy.html", "ref.html"), _case("ok.html", "ref.html")])
    assert time.monotonic() - started < 0.4
    assert report.outcomes[0].error_kind == "timeout"
    assert report.outcomes[1].verdict == "passed"
    assert "still running in the adapter (sleepy.html)" in caplog.text


def test_interrupt_cancels_in_flight_cases_and_propagates(tmp_path: Path) -> None:
    adapter = BlockingAdapter({"fast.html": SHIFTED, "ref.html": SWATCH})
    out_dir = tmp_path / "out"
    cases = [_case("slow.html", "ref.html"), _case("fast.html", "ref.html"), _case("slow-2.html", "ref.html")]

    def interrupt(outcome, index, total):
        raise KeyboardInterrupt

    runner = TestRunner(adapter, workers=2, output_dir=out_dir)
    started = time.monotonic()
    with pytest.raises(KeyboardInterrupt):
        runner.run(cases, on_result=interrupt)
    assert time.monotonic() - started < 3
    assert "slow.html" in adapter.cancel_events
    assert all(event.is_set() for event in adapter.cancel_events.values())
    assert not [p for p in out_dir.iterdir() if p.suffix == ".tmp"]


def test_mismatch_relation_passes_when_renders_differ() -> None:
    adapter = MappingAdapter({"t.html": SHIFTED, "r.html": SWATCH, "same.html": SWATCH})
    report = TestRunner(adapter).run(
        [_case("t.html", "r.html", relation="mismatch"), _case("same.html", "r.html", relation="mismatch")]
    )
    assert [outcome.verdict for outcome in report.outcomes] == ["passed", "failed"]


def test_fuzzy_allowance_overrides_thresholds() -> None:
    adapter = MappingAdapter({"t.html": SHIFTED, "r.html": SWATCH})
    fuzzy = FuzzyAllowance(total_pixels=100)
    outcome = TestRunner(adapter).run([_case("t.html", "r.html", fuzzy=fuzzy)]).outcomes[0]
    assert outcome.verdict == "passed"
    assert outcome.mismatched == 100
    assert outcome.tolerance == pytest.approx(100 / (206 * 165))


def test_diff_images_written_with_unique_names(tmp_path: Path) -> None:
    adapter = MappingAdapter({"t.html": SHIFTED, "r.html": SWATCH})
    cases = [
        TestCase(id="a/t.html", test_path=Path("/x/t.html"), reference_path=Path("/x/r.html")),
        TestCase(id="b/t.html", test_path=Path("/y/t.html"), reference_path=Path("/y/r.html")),
    ]
    report = TestRunner(adapter, workers=2, output_dir=tmp_path / "out").run(cases)
    paths = [outcome.diff_path for outcome in report.outcomes]
    assert all(path is not None and path.exists() for path in paths)
    assert len(set(paths)) == 2
    assert all(outcome.diff_image is None for outcome in report.outcomes)
    assert load_png(paths[0]).size == SWATCH.size
    assert not [p for p in (tmp_path / "out").iterdir() if p.suffix == ".tmp"]


def test_diff_filename_is_sanitized() -> None:
    assert diff_filename(3, "padding/vrl 001.html") == "0003-padding_vrl_001.html.diff.png"


def test_empty_case_list_yields_empty_report() -> None:
    report = TestRunner(MappingAdapter({})).run([])
    assert report.total == 0
    assert report.exit_code == 1


def test_runner_rejects_invalid_worker_count() -> None:
    with pytest.raises(ValueError):
        TestRunner(MappingAdapter({}), workers=0)
