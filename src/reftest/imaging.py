"""PNG helpers converting between image files and render results."""
from __future__ import annotations

import os
import tempfile
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from reftest.core.models import RenderResult


def load_png(path: Path) -> RenderResult:
    """Read an image file into an RGBA render result."""

    try:
        with Image.open(path) as image:
            pixels = np.asarray(image.convert("RGBA"), dtype=np.uint8)
    except (OSError, UnidentifiedImageError) as exc:
        raise ValueError(f"Unable to read image {path}: {exc}") from exc
    return RenderResult(pixels.copy())


def save_png(result: RenderResult, path: Path) -> Path:
    """Write ``result`` to ``path`` atomically; returns the final path."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    os.close(fd)
    try:
        Image.fromarray(result.pixels).save(tmp_name, format="PNG")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path
