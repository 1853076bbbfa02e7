"""Render adapter exports."""
from .base import AdapterManager, RenderAdapter, adapter_manager, check_viewport
from .command import CommandRenderAdapter
from .snapshot import SnapshotRenderAdapter

__all__ = [
    "AdapterManager",
    "RenderAdapter",
    "adapter_manager",
    "check_viewport",
    "CommandRenderAdapter",
    "SnapshotRenderAdapter",
    "register_builtin_adapters",
]


def register_builtin_adapters() -> None:
    """Register the command and snapshot adapters (safe to call repeatedly)."""

    if "command" not in adapter_manager:
        adapter_manager.register("command", CommandRenderAdapter.from_options)
    if "snapshot" not in adapter_manager:
        adapter_manager.register("snapshot", SnapshotRenderAdapter.from_options)
