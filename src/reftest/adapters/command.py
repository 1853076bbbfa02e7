"""Render adapter that shells out to an external renderer command."""
from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from reftest.core.errors import CaseTimeoutError, RenderError
from reftest.core.models import RenderResult, Viewport
from reftest.imaging import load_png

from .base import RenderAdapter, check_viewport

log = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.05


class CommandRenderAdapter(RenderAdapter):
    """Runs a user-provided command that rasterizes ``{input}`` into ``{output}``.

    The command is an argv template. Available tokens: ``{input}``,
    ``{output}``, ``{width}``, ``{height}``, ``{viewport}`` and ``{workdir}``.
    The command runs inside a private temporary directory which is removed
    once the render finishes, fails or is cancelled.
    """

    name = "command"

    def __init__(
        self,
        command: Sequence[str],
        *,
        env: Optional[Mapping[str, str]] = None,
        output_name: str = "render.png",
    ) -> None:
        if not command:
            raise ValueError("Command adapter requires a non-empty command")
        self._command = [str(part) for part in command]
        self._env = {str(k): str(v) for k, v in (env or {}).items()}
        self._output_name = output_name

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "CommandRenderAdapter":
        return cls(
            normalize_command(options.get("command")),
            env=options.get("env") or {},
            output_name=str(options.get("output_name", "render.png")),
        )

    def render(
        self,
        document: Path,
        viewport: Viewport,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> RenderResult:
        with tempfile.TemporaryDirectory(prefix="reftest-render-") as tmp:
            workdir = Path(tmp)
            output = workdir / self._output_name
            tokens = {
                "input": str(Path(document).resolve()),
                "output": str(output),
                "width": str(viewport.width),
                "height": str(viewport.height),
                "viewport": viewport.label(),
                "workdir": str(workdir),
            }
            argv = [_render_token(part, tokens) for part in self._command]
            env = os.environ.copy()
            env.update({key: _render_token(value, tokens) for key, value in self._env.items()})
            self._run(argv, workdir, env, timeout, cancel)
            if not output.exists():
                raise RenderError(f"renderer produced no output for {document} (expected {output})")
            try:
                result = load_png(output)
            except ValueError as exc:
                raise RenderError(str(exc), cause=exc) from exc
            return check_viewport(result, viewport, document)

    def _run(
        self,
        argv: List[str],
        workdir: Path,
        env: Dict[str, str],
        timeout: Optional[float],
        cancel: Optional[threading.Event],
    ) -> None:
        log.debug("running renderer: %s", " ".join(shlex.quote(part) for part in argv))
        deadline = time.monotonic() + timeout if timeout is not None else None
        try:
            proc = subprocess.Popen(
                argv,
                cwd=str(workdir),
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as exc:
            raise RenderError(f"failed to start renderer '{argv[0]}': {exc}", cause=exc) from exc
        try:
            while True:
                try:
                    stdout, stderr = proc.communicate(timeout=POLL_INTERVAL_S)
                    break
                except subprocess.TimeoutExpired:
                    pass
                if cancel is not None and cancel.is_set():
                    raise CaseTimeoutError(f"render of '{argv[0]}' cancelled")
                if deadline is not None and time.monotonic() >= deadline:
                    raise CaseTimeoutError(f"renderer timed out after {timeout:.3f}s")
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.communicate()
        if proc.returncode != 0:
            raise RenderError(
                f"renderer command failed (code {proc.returncode}): "
                f"{stderr.strip() or stdout.strip()}"
            )


def normalize_command(value: Any) -> List[str]:
    if value is None:
        raise ValueError("Command adapter requires 'command' as a string or list")
    if isinstance(value, (str, os.PathLike)):
        return shlex.split(str(value))
    if isinstance(value, (list, tuple)):
        return [str(part) for part in value]
    raise ValueError("Command adapter requires 'command' as a string or list")


def _render_token(value: str, tokens: Mapping[str, str]) -> str:
    if "{" not in value or "}" not in value:
        return value
    try:
        return value.format(**tokens)
    except KeyError as exc:
        available = ", ".join(sorted(tokens.keys()))
        raise ValueError(f"Unknown token {exc} in value '{value}'. Available tokens: {available}") from exc
