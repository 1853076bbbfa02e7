"""Render adapter abstractions."""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from reftest.core.errors import RenderError
from reftest.core.models import RenderResult, Viewport

AdapterFactory = Callable[[Mapping[str, Any]], "RenderAdapter"]


class RenderAdapter:
    """Base interface for the external rendering engine boundary.

    Implementations rasterize one document at a fixed viewport. Failures are
    reported as :class:`~reftest.core.errors.RenderError`; exceeding
    ``timeout`` or observing ``cancel`` raises
    :class:`~reftest.core.errors.CaseTimeoutError`. Adapters own any retry
    policy.

    Renders run on non-daemon worker threads. When a case times out the
    runner reports it and stops waiting, but the interpreter still joins the
    worker at exit, so an adapter that never checks ``cancel`` keeps the
    process alive until its render returns.

    The returned buffer must be ``viewport.width`` x ``viewport.height``.
    """

    name: str = ""

    def render(
        self,
        document: Path,
        viewport: Viewport,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> RenderResult:
        raise NotImplementedError


class AdapterManager:
    """Registry of render adapter factories keyed by name."""

    def __init__(self) -> None:
        self._factories: Dict[str, AdapterFactory] = {}

    def register(self, name: str, factory: AdapterFactory) -> None:
        if name in self._factories:
            raise ValueError(f"Render adapter '{name}' already registered")
        self._factories[name] = factory

    def create(self, name: str, options: Optional[Mapping[str, Any]] = None) -> RenderAdapter:
        factory = self._factories.get(name)
        if factory is None:
            available = ", ".join(sorted(self._factories)) or "none"
            raise KeyError(f"No render adapter registered as {name!r} (available: {available})")
        return factory(dict(options or {}))

    def names(self) -> Iterable[str]:
        return tuple(sorted(self._factories))

    def __contains__(self, name: object) -> bool:
        return name in self._factories


adapter_manager = AdapterManager()


def check_viewport(result: RenderResult, viewport: Viewport, document: Path) -> RenderResult:
    """Reject renders whose size differs from the requested viewport."""

    if result.size != (viewport.width, viewport.height):
        raise RenderError(
            f"render of {document} is {result.width}x{result.height}, "
            f"expected viewport {viewport.label()}"
        )
    return result
