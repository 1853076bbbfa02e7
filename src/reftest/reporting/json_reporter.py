"""JSON reporter emitting structured run results."""
from __future__ import annotations

import datetime as dt
import json
import pathlib
from typing import Any, Dict, Optional

import click
from jsonschema import validate

from reftest.config import RunSettings
from reftest.core.results import ComparisonOutcome, Report

from .base import Reporter
from .schema import JSON_SCHEMA_V1, SCHEMA_VERSION


class JsonReporter(Reporter):
    """Writes the report to a JSON file (or stdout) validated against the schema."""

    def __init__(self, path: Optional[str] = None) -> None:
        self._path = pathlib.Path(path) if path else None
        self._settings: RunSettings | None = None

    def on_start(self, settings: RunSettings, total: int) -> None:
        self._settings = settings

    def on_case_result(self, outcome: ComparisonOutcome, index: int, total: int) -> None:
        return None

    def on_complete(self, report: Report) -> None:
        if self._settings is None:
            return
        payload = report_to_dict(report, self._settings)
        text = json.dumps(payload, indent=2)
        if self._path is None:
            click.echo(text)
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(text, encoding="utf-8")
        except OSError as exc:  # pragma: no cover - filesystem protection
            raise RuntimeError(f"Failed to write JSON report to {self._path}: {exc}") from exc
        click.echo(f"JSON report written to {self._path}", err=True)


def report_to_dict(report: Report, settings: RunSettings) -> Dict[str, Any]:
    """Serialize ``report``; the payload is validated before it is returned."""

    payload = {
        "schema_version": SCHEMA_VERSION,
        "generated_at": dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "summary": {
            "total": report.total,
            "passed": report.passed,
            "failed": report.failed,
            "errors": report.errors,
            "skipped": len(report.skipped),
            "duration_s": report.duration_s,
            "tolerance": settings.tolerance,
            "noise_threshold": settings.noise_threshold,
            "viewport": settings.viewport.label(),
        },
        "cases": [_outcome_to_dict(outcome) for outcome in report.outcomes],
        "skipped": [
            {"path": str(item.path), "reason": item.reason, "detail": item.detail}
            for item in report.skipped
        ],
    }
    validate(instance=payload, schema=JSON_SCHEMA_V1)
    return payload


def _outcome_to_dict(outcome: ComparisonOutcome) -> Dict[str, Any]:
    case = outcome.test_case
    if case is None:
        raise ValueError("cannot serialize an outcome without its test case")
    record: Dict[str, Any] = {
        "id": case.id,
        "test": str(case.test_path),
        "reference": str(case.reference_path),
        "relation": case.relation,
        "verdict": outcome.verdict,
        # NaN is not valid JSON; an undefined ratio is reported as null.
        "mismatch_ratio": outcome.mismatch_ratio if outcome.ratio_defined else None,
        "mismatched": outcome.mismatched,
        "total": outcome.total,
        "tolerance": outcome.tolerance,
        "noise_threshold": outcome.noise_threshold,
        "diff_path": str(outcome.diff_path) if outcome.diff_path else None,
        "duration_ms": outcome.duration_s * 1000,
        "assertion": case.assertion,
        "flags": sorted(case.flags),
    }
    if outcome.error:
        record["error"] = outcome.error
    if outcome.error_kind:
        record["error_kind"] = outcome.error_kind
    return record
