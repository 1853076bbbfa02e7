"""Core dataclasses shared across reftest subsystems."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Optional

import numpy as np


RELATIONS = ("match", "mismatch")


@dataclass(frozen=True)
class Viewport:
    """Fixed pixel size used to rasterize documents."""

    width: int = 800
    height: int = 600

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Viewport dimensions must be positive, got {self.label()}")

    def label(self) -> str:
        return f"{self.width}x{self.height}"

    @classmethod
    def parse(cls, text: str) -> "Viewport":
        normalized = text.strip().lower().replace(",", "x")
        parts = [part.strip() for part in normalized.split("x") if part.strip()]
        if len(parts) != 2:
            raise ValueError(f"Invalid viewport specification '{text}', expected WIDTHxHEIGHT")
        try:
            width, height = int(parts[0]), int(parts[1])
        except ValueError as exc:
            raise ValueError(f"Non-integer dimension in viewport '{text}'") from exc
        return cls(width=width, height=height)


@dataclass(frozen=True)
class FuzzyAllowance:
    """Per-fixture comparison override declared in the document's metadata."""

    max_difference: Optional[int] = None
    total_pixels: Optional[int] = None

    @classmethod
    def parse(cls, content: str) -> "FuzzyAllowance":
        values: dict[str, int] = {}
        for item in content.split(";"):
            if not item.strip():
                continue
            if "=" not in item:
                raise ValueError(f"Invalid fuzzy entry '{item.strip()}'")
            key, raw = item.split("=", 1)
            # Ranges are written as "low-high"; only the upper bound matters here.
            upper = raw.strip().split("-")[-1]
            values[key.strip()] = int(upper)
        unknown = set(values) - {"maxDifference", "totalPixels"}
        if unknown:
            raise ValueError(f"Unknown fuzzy keys: {', '.join(sorted(unknown))}")
        return cls(
            max_difference=values.get("maxDifference"),
            total_pixels=values.get("totalPixels"),
        )


@dataclass(frozen=True)
class TestCase:
    """A test document paired with its reference document."""

    __test__ = False  # not a pytest class

    id: str
    test_path: Path
    reference_path: Path
    relation: str = "match"
    assertion: str = ""
    flags: FrozenSet[str] = field(default_factory=frozenset)
    title: str = ""
    fuzzy: Optional[FuzzyAllowance] = None

    def __post_init__(self) -> None:
        if self.relation not in RELATIONS:
            raise ValueError(f"Unknown relation '{self.relation}' for {self.id}")

    def identifier(self) -> str:
        symbol = "==" if self.relation == "match" else "!="
        return f"{self.id} {symbol} {self.reference_path.name}"


@dataclass(frozen=True, eq=False)
class RenderResult:
    """An RGBA pixel buffer produced by a render adapter."""

    pixels: np.ndarray

    def __post_init__(self) -> None:
        pixels = np.asarray(self.pixels)
        if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
            raise ValueError(f"Expected an HxWx3 or HxWx4 buffer, got shape {pixels.shape}")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise ValueError("Render result must have positive width and height")
        if pixels.shape[2] == 3:
            alpha = np.full(pixels.shape[:2] + (1,), 255, dtype=np.uint8)
            pixels = np.concatenate([pixels.astype(np.uint8), alpha], axis=2)
        object.__setattr__(self, "pixels", pixels.astype(np.uint8, copy=False))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @classmethod
    def solid(cls, width: int, height: int, rgba: tuple[int, int, int, int]) -> "RenderResult":
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[:, :] = rgba
        return cls(pixels)
