"""Terminal reporter rendering progress and summaries."""
from __future__ import annotations

import click
from colorama import Fore, Style

from reftest.config import RunSettings
from reftest.core.results import ComparisonOutcome, Report

from .base import Reporter


STATUS_LABELS = {
    "passed": ("PASS", Fore.GREEN),
    "failed": ("FAIL", Fore.RED),
    "error": ("ERROR", Fore.YELLOW),
}


class TerminalReporter(Reporter):
    """Human-readable reporter that streams to stdout."""

    def __init__(self, *, use_color: bool = True) -> None:
        self._use_color = use_color
        self._failures: list[ComparisonOutcome] = []

    def on_start(self, settings: RunSettings, total: int) -> None:
        self._failures.clear()
        timeout = f"{settings.timeout_ms}ms" if settings.timeout_ms else "none"
        click.echo(
            self._colored(
                f"Starting run: {total} case(s) adapter={settings.adapter} "
                f"viewport={settings.viewport.label()} tolerance={settings.tolerance} "
                f"noise={settings.noise_threshold} workers={settings.workers} timeout={timeout}",
                Fore.CYAN,
            )
        )

    def on_case_result(self, outcome: ComparisonOutcome, index: int, total: int) -> None:
        label, color = STATUS_LABELS.get(outcome.verdict, (outcome.verdict.upper(), ""))
        identifier = outcome.test_case.identifier() if outcome.test_case else "?"
        ms = outcome.duration_s * 1000
        click.echo(
            f"[{index}/{total}] {self._colored(f'{label:<5}', color)} {identifier} "
            f"ratio={format_ratio(outcome)} ({ms:.2f} ms)"
        )
        if not outcome.passed:
            self._failures.append(outcome)

    def on_complete(self, report: Report) -> None:
        if report.skipped:
            click.echo(self._colored(f"Skipped {len(report.skipped)} document(s):", Fore.YELLOW))
            for item in report.skipped:
                detail = f" ({item.detail})" if item.detail else ""
                click.echo(f"  {item.path} -> {item.reason}{detail}")
        if self._failures:
            click.echo(self._colored("Failure details:", Fore.RED))
            for outcome in report.outcomes:
                if not outcome.passed:
                    self._print_failure_details(outcome)
        summary_color = Fore.GREEN if report.exit_code == 0 else Fore.RED
        click.echo(
            self._colored(
                f"Summary: total={report.total} passed={report.passed} failed={report.failed} "
                f"errors={report.errors} skipped={len(report.skipped)} "
                f"duration={report.duration_s:.2f}s",
                summary_color,
            )
        )

    def _colored(self, text: str, color: str) -> str:
        if not self._use_color or not color:
            return text
        return f"{color}{text}{Style.RESET_ALL}"

    def _print_failure_details(self, outcome: ComparisonOutcome, *, indent: str = "    ") -> None:
        case = outcome.test_case
        if case is None:
            return
        click.echo(f"  {case.identifier()} -> {outcome.verdict}")
        if case.assertion:
            click.echo(f"{indent}assert: {case.assertion}")
        if outcome.error:
            click.echo(f"{indent}error ({outcome.error_kind}): {outcome.error}")
            return
        click.echo(
            f"{indent}mismatched {outcome.mismatched}/{outcome.total} "
            f"ratio={format_ratio(outcome)} tolerance={outcome.tolerance} "
            f"noise={outcome.noise_threshold}"
        )
        if case.relation == "mismatch":
            click.echo(f"{indent}renders were expected to differ")
        if outcome.diff_path:
            click.echo(f"{indent}diff: {outcome.diff_path}")


def format_ratio(outcome: ComparisonOutcome) -> str:
    if not outcome.ratio_defined:
        return "n/a"
    return f"{outcome.mismatch_ratio:.6f}"
