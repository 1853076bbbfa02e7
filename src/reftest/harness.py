"""Run orchestration: discovery, rendering, comparison and reporting."""
from __future__ import annotations

import logging
from typing import List, Optional

import click
from colorama import init as colorama_init

from reftest.adapters import RenderAdapter, adapter_manager
from reftest.config import RunSettings
from reftest.core.errors import ConfigError, FatalRunError
from reftest.core.models import TestCase
from reftest.core.results import Report
from reftest.core.runner import TestRunner
from reftest.fixtures import FixtureLoader, select_cases
from reftest.reporting import JsonReporter, ReportManager, Reporter, TerminalReporter

log = logging.getLogger(__name__)


def create_adapter(settings: RunSettings) -> RenderAdapter:
    try:
        return adapter_manager.create(settings.adapter, settings.adapter_options)
    except (KeyError, ValueError) as exc:
        raise ConfigError(f"Cannot create render adapter '{settings.adapter}': {exc}") from exc


def collect_cases(settings: RunSettings, loader: Optional[FixtureLoader] = None) -> List[TestCase]:
    """Discover and filter cases; raises :class:`FatalRunError` when none remain."""

    loader = loader or FixtureLoader()
    cases = list(
        select_cases(
            loader.discover(settings.root),
            patterns=settings.cases,
            flags=settings.flags,
            skip_flags=settings.skip_flags,
        )
    )
    if not cases:
        raise FatalRunError(f"No fixtures discovered under {settings.root}")
    return cases


def run_suite(
    settings: RunSettings,
    *,
    adapter: Optional[RenderAdapter] = None,
    report_format: str = "terminal",
    report_path: Optional[str] = None,
    use_color: bool = True,
) -> Report:
    """Execute every discovered case and dispatch the results to reporters."""

    colorama_init()
    loader = FixtureLoader()
    cases = collect_cases(settings, loader)
    adapter = adapter or create_adapter(settings)
    reporters: List[Reporter] = []
    if report_format == "terminal":
        reporters.append(TerminalReporter(use_color=use_color))
    else:
        reporters.append(JsonReporter(path=report_path))
    manager = ReportManager(reporters)
    runner = TestRunner(
        adapter,
        viewport=settings.viewport,
        tolerance=settings.tolerance,
        noise_threshold=settings.noise_threshold,
        timeout_s=settings.timeout_s,
        workers=settings.workers,
        output_dir=settings.out,
    )
    log.info("running %d case(s) from %s", len(cases), settings.root)
    manager.start(settings, len(cases))
    report = runner.run(cases, skipped=loader.skipped, on_result=manager.handle_result)
    manager.complete(report)
    return report


def list_suite(settings: RunSettings) -> int:
    """Print discovered case identifiers and skipped documents."""

    loader = FixtureLoader()
    cases = collect_cases(settings, loader)
    for case in cases:
        flags = f" [{' '.join(sorted(case.flags))}]" if case.flags else ""
        click.echo(f"{case.identifier()}{flags}")
    for item in loader.skipped:
        click.echo(f"skipped: {item.path} ({item.reason})")
    return 0
