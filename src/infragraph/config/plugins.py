"""Provider plugin loading."""

from __future__ import annotations

import importlib
import importlib.metadata
import importlib.util
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from infragraph.engine.providers import ResourceProvider

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import ModuleType

    from infragraph.config.schema import PluginSpec

ENTRY_POINT_GROUP = "infragraph.providers"


class PluginError(Exception):
    """Raised when a provider plugin cannot be resolved or instantiated."""


def _load_local_module(module_path: str, config_dir: Path) -> ModuleType:
    """Load a Python module from a file relative to *config_dir*."""
    parts = module_path.split(".")
    candidates = [
        config_dir / Path(*parts).with_suffix(".py"),
        config_dir / Path(*parts) / "__init__.py",
    ]
    file_path = next((p for p in candidates if p.exists()), None)
    if file_path is None:
        raise PluginError(f"Module '{module_path}' not found relative to {config_dir}")

    spec = importlib.util.spec_from_file_location(module_path, file_path)
    if spec is None or spec.loader is None:
        raise PluginError(f"Failed to create module spec for '{file_path}'")
    mod = importlib.util.module_from_spec(spec)
    sys.modules.setdefault(module_path, mod)
    spec.loader.exec_module(mod)
    return mod


def _resolve_factory(call: str, config_dir: Path) -> Callable[..., Any]:
    """Resolve a *call* string to a provider class or factory.

    Resolution order:

    1. No ``:`` and no ``.``: entry-point lookup (group ``infragraph.providers``).
    2. Otherwise split into ``module_path:attribute`` (or ``module_path.attribute``).
       a. Try ``importlib.import_module`` (installed packages).
       b. Fall back to ``spec_from_file_location`` (local files relative to *config_dir*).
    """
    if ":" not in call and "." not in call:
        eps = list(importlib.metadata.entry_points(group=ENTRY_POINT_GROUP, name=call))
        if not eps:
            raise PluginError(f"No entry point found for '{call}' in group '{ENTRY_POINT_GROUP}'")
        return eps[0].load()

    module_path, _, attr_name = call.rpartition(":" if ":" in call else ".")
    if not module_path or not attr_name:
        raise PluginError(f"Invalid plugin syntax '{call}': expected 'module.path:ClassName'")

    try:
        mod = importlib.import_module(module_path)
    except ModuleNotFoundError:
        mod = _load_local_module(module_path, config_dir)

    obj = getattr(mod, attr_name, None)
    if not callable(obj):
        raise PluginError(
            f"'{call}' is not callable"
            if obj is not None
            else f"Module has no attribute '{attr_name}' (from '{call}')"
        )
    return obj


def load_plugin(resource_type: str, spec: PluginSpec, config_dir: Path) -> ResourceProvider:
    """Instantiate the provider plugin configured for *resource_type*."""
    factory = _resolve_factory(spec.call, config_dir)
    try:
        provider = factory(**spec.with_)
    except Exception as exc:
        raise PluginError(
            f"Provider plugin for '{resource_type}' raised {type(exc).__name__}: {exc}"
        ) from exc

    if not isinstance(provider, ResourceProvider):
        raise PluginError(
            f"Provider plugin for '{resource_type}' must return a ResourceProvider, "
            f"got {type(provider).__name__}"
        )
    return provider
