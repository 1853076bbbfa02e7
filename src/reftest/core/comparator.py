"""Utilities for comparing two render results pixel by pixel."""
from __future__ import annotations

from typing import Optional

import numpy as np

from .errors import DimensionMismatchError, error_kind
from .models import RenderResult, TestCase
from .results import ERROR, FAILED, PASSED, ComparisonOutcome

DEFAULT_TOLERANCE = 0.0
DEFAULT_NOISE_THRESHOLD = 2

_DIFF_COLOR = np.array([255, 0, 0, 255], dtype=np.uint8)


def compare(
    a: RenderResult,
    b: RenderResult,
    tolerance: float = DEFAULT_TOLERANCE,
    *,
    noise_threshold: int = DEFAULT_NOISE_THRESHOLD,
    case: Optional[TestCase] = None,
) -> ComparisonOutcome:
    """Compare two renders and score the fraction of mismatched pixels.

    A pixel is mismatched when any RGBA channel differs by more than
    ``noise_threshold``. The verdict is ``passed`` when the mismatch ratio is
    at most ``tolerance``. Renders of different sizes are never cropped or
    scaled; they raise :class:`DimensionMismatchError`.
    """

    if not 0.0 <= tolerance <= 1.0:
        raise ValueError(f"tolerance must be within [0, 1], got {tolerance}")
    if noise_threshold < 0:
        raise ValueError(f"noise_threshold must be non-negative, got {noise_threshold}")
    if a.size != b.size:
        raise DimensionMismatchError(a.size, b.size)

    mask = mismatch_mask(a, b, noise_threshold)
    total = int(mask.size)
    mismatched = int(np.count_nonzero(mask))
    ratio = mismatched / total
    return ComparisonOutcome(
        test_case=case,
        verdict=PASSED if ratio <= tolerance else FAILED,
        mismatch_ratio=ratio,
        mismatched=mismatched,
        total=total,
        tolerance=tolerance,
        noise_threshold=noise_threshold,
        diff_image=build_diff_image(a, mask) if mismatched else None,
    )


def mismatch_mask(a: RenderResult, b: RenderResult, noise_threshold: int) -> np.ndarray:
    """Boolean HxW mask of pixels whose channels differ beyond the threshold."""

    diff = np.abs(a.pixels.astype(np.int16) - b.pixels.astype(np.int16))
    return np.any(diff > noise_threshold, axis=2)


def build_diff_image(base: RenderResult, mask: np.ndarray) -> RenderResult:
    """Fade ``base`` towards white and paint mismatched pixels red."""

    faded = base.pixels.astype(np.float32)
    faded[..., :3] = faded[..., :3] * 0.25 + 255 * 0.75
    faded[..., 3] = 255
    pixels = faded.astype(np.uint8)
    pixels[mask] = _DIFF_COLOR
    return RenderResult(pixels)


def error_outcome(
    case: Optional[TestCase],
    exc: BaseException,
    *,
    tolerance: float = DEFAULT_TOLERANCE,
    noise_threshold: int = DEFAULT_NOISE_THRESHOLD,
    duration_s: float = 0.0,
) -> ComparisonOutcome:
    """Outcome for a case whose renders could not be scored."""

    return ComparisonOutcome(
        test_case=case,
        verdict=ERROR,
        mismatch_ratio=float("nan"),
        tolerance=tolerance,
        noise_threshold=noise_threshold,
        error=str(exc) or exc.__class__.__name__,
        error_kind=error_kind(exc),
        duration_s=duration_s,
    )
