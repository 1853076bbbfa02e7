"""YAML run configuration loading, validation and option merging."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import yaml
from jsonschema import Draft7Validator

from reftest.core.comparator import DEFAULT_NOISE_THRESHOLD, DEFAULT_TOLERANCE
from reftest.core.errors import ConfigError
from reftest.core.models import Viewport

DEFAULT_CONFIG_NAME = "reftest.yaml"

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "reftest configuration",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "tolerance": {"type": "number", "minimum": 0, "maximum": 1},
        "noise_threshold": {"type": "integer", "minimum": 0, "maximum": 255},
        "timeout_ms": {"type": "integer", "exclusiveMinimum": 0},
        "workers": {"type": "integer", "minimum": 1},
        "out": {"type": "string", "minLength": 1},
        "viewport": {
            "type": "object",
            "required": ["width", "height"],
            "additionalProperties": False,
            "properties": {
                "width": {"type": "integer", "minimum": 1},
                "height": {"type": "integer", "minimum": 1},
            },
        },
        "adapter": {
            "type": "object",
            "required": ["name"],
            "properties": {
                "name": {"type": "string", "minLength": 1},
                "command": {
                    "anyOf": [
                        {"type": "string", "minLength": 1},
                        {"type": "array", "items": {"type": "string"}, "minItems": 1},
                    ]
                },
                "env": {"type": "object", "additionalProperties": {"type": ["string", "number"]}},
                "snapshot_dir": {"type": "string"},
            },
        },
        "cases": {"type": "array", "items": {"type": "string"}},
        "flags": {"type": "array", "items": {"type": "string"}},
        "skip_flags": {"type": "array", "items": {"type": "string"}},
    },
}

_validator = Draft7Validator(CONFIG_SCHEMA)


@dataclass(frozen=True)
class RunSettings:
    """Fully resolved settings for one run."""

    root: Path
    tolerance: float = DEFAULT_TOLERANCE
    noise_threshold: int = DEFAULT_NOISE_THRESHOLD
    timeout_ms: Optional[int] = None
    workers: int = 1
    out: Optional[Path] = None
    viewport: Viewport = field(default_factory=Viewport)
    adapter: str = "snapshot"
    adapter_options: Mapping[str, Any] = field(default_factory=dict)
    cases: Tuple[str, ...] = tuple()
    flags: Tuple[str, ...] = tuple()
    skip_flags: Tuple[str, ...] = tuple()

    @property
    def timeout_s(self) -> Optional[float]:
        return self.timeout_ms / 1000.0 if self.timeout_ms is not None else None


@dataclass(frozen=True)
class CliOverrides:
    """Options given on the command line; ``None`` means "not given"."""

    tolerance: Optional[float] = None
    noise_threshold: Optional[int] = None
    timeout_ms: Optional[int] = None
    workers: Optional[int] = None
    out: Optional[str] = None
    viewport: Optional[str] = None
    adapter: Optional[str] = None
    renderer_command: Optional[str] = None
    snapshot_dir: Optional[str] = None
    cases: Sequence[str] = field(default_factory=tuple)
    flags: Sequence[str] = field(default_factory=tuple)
    skip_flags: Sequence[str] = field(default_factory=tuple)


def load_config(path: Path) -> Dict[str, Any]:
    """Load and validate a YAML config file."""

    config_path = Path(path).expanduser().resolve()
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except OSError as exc:
        raise ConfigError(f"Unable to read config {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise ConfigError("Config file must contain a mapping at the top level")
    errors = sorted(_validator.iter_errors(raw), key=lambda e: list(e.path))
    if errors:
        messages = "; ".join(f"{'/'.join(map(str, err.path)) or 'root'}: {err.message}" for err in errors)
        raise ConfigError(f"Config schema validation failed: {messages}")
    return dict(raw)


def find_config(root: Path) -> Optional[Path]:
    """Return ``root/reftest.yaml`` when it exists."""

    candidate = root / DEFAULT_CONFIG_NAME if root.is_dir() else root.parent / DEFAULT_CONFIG_NAME
    return candidate if candidate.is_file() else None


def resolve_settings(
    root: Path,
    overrides: CliOverrides,
    *,
    config_path: Optional[Path] = None,
) -> RunSettings:
    """Merge defaults, the config file and CLI overrides (CLI wins)."""

    root = Path(root).expanduser().resolve()
    path = config_path or find_config(root)
    raw = load_config(path) if path else {}
    base = path.parent if path else root

    adapter_raw = dict(raw.get("adapter") or {})
    configured_adapter = adapter_raw.pop("name", None)
    adapter = overrides.adapter or configured_adapter
    if overrides.renderer_command:
        adapter_raw["command"] = overrides.renderer_command
        adapter = adapter or "command"
    if overrides.snapshot_dir:
        adapter_raw["snapshot_dir"] = overrides.snapshot_dir
    elif adapter_raw.get("snapshot_dir"):
        adapter_raw["snapshot_dir"] = str(base / adapter_raw["snapshot_dir"])
    adapter_raw["root"] = str(root)

    try:
        viewport = _resolve_viewport(overrides.viewport, raw.get("viewport"))
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    out_raw = overrides.out or raw.get("out")
    out = None
    if out_raw:
        out = Path(out_raw).expanduser()
        if not out.is_absolute():
            out = (Path.cwd() if overrides.out else base) / out

    settings = RunSettings(
        root=root,
        tolerance=_pick(overrides.tolerance, raw.get("tolerance"), DEFAULT_TOLERANCE),
        noise_threshold=_pick(overrides.noise_threshold, raw.get("noise_threshold"), DEFAULT_NOISE_THRESHOLD),
        timeout_ms=_pick(overrides.timeout_ms, raw.get("timeout_ms"), None),
        workers=_pick(overrides.workers, raw.get("workers"), 1),
        out=out,
        viewport=viewport,
        adapter=adapter or "snapshot",
        adapter_options=adapter_raw,
        cases=tuple(overrides.cases) or tuple(raw.get("cases") or ()),
        flags=tuple(overrides.flags) or tuple(raw.get("flags") or ()),
        skip_flags=tuple(overrides.skip_flags) or tuple(raw.get("skip_flags") or ()),
    )
    _validate_settings(settings)
    return settings


def _resolve_viewport(option: Optional[str], raw: Optional[Mapping[str, Any]]) -> Viewport:
    if option:
        return Viewport.parse(option)
    if raw:
        return Viewport(width=int(raw["width"]), height=int(raw["height"]))
    return Viewport()


def _pick(cli_value: Any, config_value: Any, default: Any) -> Any:
    if cli_value is not None:
        return cli_value
    if config_value is not None:
        return config_value
    return default


def _validate_settings(settings: RunSettings) -> None:
    if not 0.0 <= settings.tolerance <= 1.0:
        raise ConfigError(f"tolerance must be within [0, 1], got {settings.tolerance}")
    if not 0 <= settings.noise_threshold <= 255:
        raise ConfigError(f"noise threshold must be within [0, 255], got {settings.noise_threshold}")
    if settings.timeout_ms is not None and settings.timeout_ms <= 0:
        raise ConfigError(f"timeout must be positive, got {settings.timeout_ms}ms")
    if settings.workers < 1:
        raise ConfigError(f"workers must be at least 1, got {settings.workers}")
