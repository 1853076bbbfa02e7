"""CLI entry point for reftest."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from reftest import __version__, bootstrap
from reftest.config import CliOverrides, resolve_settings
from reftest.core.comparator import DEFAULT_NOISE_THRESHOLD, DEFAULT_TOLERANCE, compare
from reftest.core.errors import ReftestError
from reftest.harness import list_suite, run_suite
from reftest.imaging import load_png, save_png


CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

# Exit code for fatal conditions (missing root, nothing discovered, bad config).
EXIT_FATAL = 2


class CliState:
    """Holds global CLI state."""

    def __init__(self, verbose: bool) -> None:
        self.verbose = verbose


class FatalError(click.ClickException):
    exit_code = EXIT_FATAL


def _print_version(_: click.Context, __: click.Parameter, value: bool) -> None:
    if not value or click.get_current_context().resilient_parsing:
        return
    click.echo(f"reftest {__version__}")
    raise click.exceptions.Exit()


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option("--verbose", is_flag=True, help="Enable verbose logging output.")
@click.option(
    "--version",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show the reftest version and exit.",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Visual regression test harness for reference-matched documents."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    bootstrap()
    ctx.obj = CliState(verbose=verbose)


def _selection_options(func):
    options = [
        click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="YAML config file (defaults to ROOT/reftest.yaml)."),
        click.option("--cases", "case_filters", type=str, help="Comma-separated case id filters (supports globs)."),
        click.option("--flags", "flag_filters", type=str, help="Comma-separated flags to include."),
        click.option("--skip-flags", "skip_flag_filters", type=str, help="Comma-separated flags to skip."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@cli.command()
@click.argument("root", type=click.Path(path_type=Path))
@click.option("--tolerance", type=click.FloatRange(0.0, 1.0), help="Allowed mismatch ratio (default 0.0).")
@click.option("--noise-threshold", type=click.IntRange(0, 255), help="Per-channel difference ignored as noise (default 2).")
@click.option("--timeout", "timeout_ms", type=click.IntRange(min=1), help="Per-case timeout in milliseconds.")
@click.option("--workers", type=click.IntRange(min=1), help="Number of cases rendered concurrently.")
@click.option("--out", "out_dir", type=str, help="Directory receiving diff images.")
@click.option("--viewport", type=str, help="Viewport as WIDTHxHEIGHT (default 800x600).")
@click.option("--adapter", type=str, help="Render adapter name (command, snapshot, or a plugin).")
@click.option("--renderer-command", type=str, help="Renderer command line for the command adapter.")
@click.option("--snapshot-dir", type=str, help="Snapshot directory for the snapshot adapter.")
@_selection_options
@click.option(
    "--report",
    "report_format",
    type=click.Choice(["terminal", "json"]),
    default="terminal",
    show_default=True,
    help="Report format (terminal by default).",
)
@click.option("--report-path", type=str, help="When --report json, write to this path.")
@click.option("--no-color", is_flag=True, help="Disable ANSI colors in terminal output.")
@click.pass_obj
def run(
    state: CliState,
    root: Path,
    tolerance: Optional[float],
    noise_threshold: Optional[int],
    timeout_ms: Optional[int],
    workers: Optional[int],
    out_dir: Optional[str],
    viewport: Optional[str],
    adapter: Optional[str],
    renderer_command: Optional[str],
    snapshot_dir: Optional[str],
    config_path: Optional[str],
    case_filters: Optional[str],
    flag_filters: Optional[str],
    skip_flag_filters: Optional[str],
    report_format: str,
    report_path: Optional[str],
    no_color: bool,
) -> None:
    """Render and compare every reference-matched document under ROOT."""

    overrides = CliOverrides(
        tolerance=tolerance,
        noise_threshold=noise_threshold,
        timeout_ms=timeout_ms,
        workers=workers,
        out=out_dir,
        viewport=viewport,
        adapter=adapter,
        renderer_command=renderer_command,
        snapshot_dir=snapshot_dir,
        cases=_split_csv(case_filters),
        flags=_split_csv(flag_filters),
        skip_flags=_split_csv(skip_flag_filters),
    )
    try:
        settings = resolve_settings(root, overrides, config_path=Path(config_path) if config_path else None)
        report = run_suite(
            settings,
            report_format=report_format,
            report_path=report_path,
            use_color=not no_color,
        )
    except ReftestError as exc:
        raise FatalError(str(exc)) from exc
    raise click.exceptions.Exit(report.exit_code)


@cli.command(name="list")
@click.argument("root", type=click.Path(path_type=Path))
@_selection_options
def list_cases(
    root: Path,
    config_path: Optional[str],
    case_filters: Optional[str],
    flag_filters: Optional[str],
    skip_flag_filters: Optional[str],
) -> None:
    """List discovered cases without rendering them."""

    overrides = CliOverrides(
        cases=_split_csv(case_filters),
        flags=_split_csv(flag_filters),
        skip_flags=_split_csv(skip_flag_filters),
    )
    try:
        settings = resolve_settings(root, overrides, config_path=Path(config_path) if config_path else None)
        exit_code = list_suite(settings)
    except ReftestError as exc:
        raise FatalError(str(exc)) from exc
    raise click.exceptions.Exit(exit_code)


@cli.command(name="compare")
@click.argument("actual", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("expected", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--tolerance", type=click.FloatRange(0.0, 1.0), default=DEFAULT_TOLERANCE, show_default=True)
@click.option("--noise-threshold", type=click.IntRange(0, 255), default=DEFAULT_NOISE_THRESHOLD, show_default=True)
@click.option("--diff", "diff_path", type=click.Path(dir_okay=False, path_type=Path), help="Write a diff image here on mismatch.")
def compare_images(
    actual: Path,
    expected: Path,
    tolerance: float,
    noise_threshold: int,
    diff_path: Optional[Path],
) -> None:
    """Compare two PNG images directly."""

    try:
        first = load_png(actual)
        second = load_png(expected)
        outcome = compare(first, second, tolerance, noise_threshold=noise_threshold)
    except (ValueError, ReftestError) as exc:
        raise FatalError(str(exc)) from exc
    click.echo(
        f"{outcome.verdict.upper()} mismatched={outcome.mismatched}/{outcome.total} "
        f"ratio={outcome.mismatch_ratio:.6f}"
    )
    if diff_path is not None and outcome.diff_image is not None:
        save_png(outcome.diff_image, diff_path)
        click.echo(f"diff: {diff_path}")
    raise click.exceptions.Exit(0 if outcome.passed else 1)


def _split_csv(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return tuple()
    parts = [part.strip() for part in value.split(",") if part.strip()]
    return tuple(parts)


def main(argv: Optional[list[str]] = None) -> int:
    """Program entry point for console_scripts shim."""

    argv = argv if argv is not None else sys.argv[1:]
    try:
        cli.main(args=argv, prog_name="reftest", standalone_mode=True)
    except click.ClickException as err:  # pragma: no cover - click handles display
        err.show()
        return err.exit_code
    except SystemExit as exc:  # click may raise exit code
        return int(exc.code or 0)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

