"""reftest package initialization."""
from __future__ import annotations

import importlib
import logging
import os

from .version import __version__

__all__ = [
    "__version__",
    "bootstrap",
]

log = logging.getLogger(__name__)

_BOOTSTRAPPED = False


def bootstrap() -> None:
    """Register built-in render adapters and load plugins (idempotent)."""

    global _BOOTSTRAPPED
    if _BOOTSTRAPPED:
        return
    from .adapters import register_builtin_adapters

    register_builtin_adapters()
    _load_plugins()
    _BOOTSTRAPPED = True


def _load_plugins() -> None:
    plugin_env = os.environ.get("REFTEST_PLUGINS")
    if not plugin_env:
        return
    for item in plugin_env.split(","):
        module_name = item.strip()
        if not module_name:
            continue
        log.debug("loading plugin %s", module_name)
        module = importlib.import_module(module_name)
        register = getattr(module, "register", None)
        if callable(register):
            register()
