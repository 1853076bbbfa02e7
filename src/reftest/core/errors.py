"""Exception taxonomy shared by the loader, adapters, comparator and runner."""
from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple


class ReftestError(Exception):
    """Base class for all harness errors."""


class ConfigError(ReftestError):
    """Raised when a configuration file or option is invalid."""


class FatalRunError(ReftestError):
    """Raised when a whole run cannot proceed (missing root, nothing discovered)."""


class MissingReferenceError(ReftestError):
    """A test document declares no match/mismatch reference."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"{path} declares no match or mismatch reference")
        self.path = path


class RenderError(ReftestError):
    """The render adapter failed to load, parse or rasterize a document."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class CaseTimeoutError(ReftestError, TimeoutError):
    """A case exceeded its time budget and was cancelled."""


class DimensionMismatchError(ReftestError):
    """Two renders cannot be compared because their sizes differ."""

    def __init__(self, first: Tuple[int, int], second: Tuple[int, int]) -> None:
        super().__init__(
            f"dimension mismatch: {first[0]}x{first[1]} vs {second[0]}x{second[1]}"
        )
        self.first = first
        self.second = second


def error_kind(exc: BaseException) -> str:
    """Map an exception to the ``error_kind`` recorded on an outcome."""

    if isinstance(exc, CaseTimeoutError):
        return "timeout"
    if isinstance(exc, DimensionMismatchError):
        return "dimension"
    if isinstance(exc, RenderError):
        return "render"
    return "internal"
