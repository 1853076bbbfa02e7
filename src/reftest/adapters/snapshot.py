"""Render adapter serving pre-rendered PNG snapshots."""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Mapping, Optional

from reftest.core.errors import CaseTimeoutError, RenderError
from reftest.core.models import RenderResult, Viewport
from reftest.imaging import load_png

from .base import RenderAdapter, check_viewport


class SnapshotRenderAdapter(RenderAdapter):
    """Loads ``<document>.png`` (or a mirror under ``snapshot_dir``) as the render.

    With ``snapshot_dir`` set, the snapshot of ``root/a/b.html`` is looked up
    at ``snapshot_dir/a/b.html.png`` first, then beside the document.
    """

    name = "snapshot"

    def __init__(self, *, snapshot_dir: Optional[Path] = None, root: Optional[Path] = None) -> None:
        self._snapshot_dir = Path(snapshot_dir).expanduser().resolve() if snapshot_dir else None
        self._root = Path(root).expanduser().resolve() if root else None

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "SnapshotRenderAdapter":
        snapshot_dir = options.get("snapshot_dir")
        root = options.get("root")
        return cls(
            snapshot_dir=Path(snapshot_dir) if snapshot_dir else None,
            root=Path(root) if root else None,
        )

    def render(
        self,
        document: Path,
        viewport: Viewport,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> RenderResult:
        if cancel is not None and cancel.is_set():
            raise CaseTimeoutError(f"render of {document} cancelled")
        for candidate in self.candidates(Path(document)):
            if candidate.is_file():
                try:
                    result = load_png(candidate)
                except ValueError as exc:
                    raise RenderError(str(exc), cause=exc) from exc
                return check_viewport(result, viewport, document)
        raise RenderError(f"no snapshot found for {document}")

    def candidates(self, document: Path) -> list[Path]:
        document = document.expanduser().resolve()
        paths: list[Path] = []
        if self._snapshot_dir is not None:
            relative = _relative_to(document, self._root) if self._root else Path(document.name)
            paths.append(self._snapshot_dir / relative.parent / f"{relative.name}.png")
        paths.append(document.parent / f"{document.name}.png")
        return paths


def _relative_to(path: Path, root: Path) -> Path:
    try:
        return path.relative_to(root)
    except ValueError:
        return Path(path.name)
