"""YAML configuration loading and convenience plan/apply API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from infragraph.config.loader import ConfigError, build_declarations, load_config
from infragraph.config.plugins import PluginError
from infragraph.config.registry import registry_from_config
from infragraph.config.schema import Config, ProviderConfig, Settings
from infragraph.core.state import State
from infragraph.core.store import LocalStateStore
from infragraph.engine.engine import Engine
from infragraph.engine.providers import ProviderContext
from infragraph.engine.types import Action, ResourceChange

if TYPE_CHECKING:
    import threading
    from pathlib import Path

    from infragraph.engine.executor import ProgressCallback
    from infragraph.engine.graph import ResourceGraph
    from infragraph.engine.types import ApplyResult, Plan

__all__ = [
    "Config",
    "ConfigError",
    "ProviderConfig",
    "Settings",
    "State",
    "apply",
    "drift",
    "graph",
    "load",
    "load_config",
    "plan",
    "plan_and_apply",
    "refresh",
    "save_state",
]


def load(path: Path | str) -> Config:
    """Load a YAML declaration file."""
    return load_config(path)


def _engine_from_config(config: Config, *, parallelism: int | None = None) -> Engine:
    """Build an ``Engine`` from a ``Config`` instance."""
    try:
        registry = registry_from_config(config)
    except PluginError as exc:
        raise ConfigError(str(exc)) from exc
    ctx = ProviderContext(region=config.provider.region, account_id=config.provider.account_id)
    return Engine(
        registry=registry,
        store=LocalStateStore(config.state_path),
        ctx=ctx,
        parallelism=parallelism or config.settings.parallelism,
        lock_path=config.state_path,
        lock_timeout=config.settings.lock_timeout,
    )


def graph(config: Config) -> ResourceGraph:
    """Build and validate the dependency graph of the declared resources."""
    return _engine_from_config(config).graph(build_declarations(config))


def plan(config: Config, *, destroy: bool = False, refresh: bool = True) -> Plan:
    """Plan changes for the given configuration."""
    engine = _engine_from_config(config)
    return engine.plan(build_declarations(config), destroy=destroy, refresh=refresh)


def apply(
    plan_obj: Plan,
    config: Config,
    *,
    progress: ProgressCallback | None = None,
    cancel: threading.Event | None = None,
    parallelism: int | None = None,
) -> ApplyResult:
    """Apply a previously computed plan."""
    engine = _engine_from_config(config, parallelism=parallelism)
    return engine.apply(plan_obj, progress=progress, cancel=cancel)


def plan_and_apply(config: Config, *, destroy: bool = False, refresh: bool = True) -> ApplyResult:
    """Plan and apply in one step."""
    plan_obj = plan(config, destroy=destroy, refresh=refresh)
    return apply(plan_obj, config)


def refresh(config: Config) -> tuple[list[ResourceChange], State]:
    """Refresh state from providers (not persisted).

    Returns the list of drift changes and the new state. Call
    :func:`save_state` to persist the returned state to disk.
    """
    engine = _engine_from_config(config)
    old_state, new_state = engine.refresh()
    return _build_drift_changes(old_state, new_state), new_state


def save_state(config: Config, state: State) -> None:
    """Persist a refreshed state to disk."""
    from infragraph.engine.lock import StateLock

    with StateLock(config.state_path, timeout=config.settings.lock_timeout):
        LocalStateStore(config.state_path).replace(state)


def drift(config: Config) -> list[ResourceChange]:
    """Detect drift between the state file and the providers."""
    changes, _ = refresh(config)
    return changes


def _build_drift_changes(old_state: State, new_state: State) -> list[ResourceChange]:
    """Compare old vs new state and return a list of drift changes."""
    changes: list[ResourceChange] = []
    for addr, old_inst in old_state.resources.items():
        new_inst = new_state.resources.get(addr)
        if new_inst is None:
            changes.append(
                ResourceChange(
                    address=addr,
                    resource_type=old_inst.resource_type,
                    action=Action.DELETE,
                    prior=dict(old_inst.attributes),
                )
            )
            continue
        old, new = old_inst.attributes, new_inst.attributes
        if old != new:
            diff = {
                k: {"from": old.get(k), "to": new.get(k)}
                for k in sorted(set(old) | set(new))
                if old.get(k) != new.get(k)
            }
            changes.append(
                ResourceChange(
                    address=addr,
                    resource_type=new_inst.resource_type,
                    action=Action.UPDATE,
                    prior=dict(old),
                    planned=dict(new),
                    diff=diff,
                )
            )
    return changes
