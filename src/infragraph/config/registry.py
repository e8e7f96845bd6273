"""Provider registry factories."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from infragraph.config.plugins import load_plugin
from infragraph.engine.registry import ProviderRegistry
from infragraph.providers.simulated import SimulatedCloud, SimulatedProvider
from infragraph.resources.catalog import CATALOG

if TYPE_CHECKING:
    from infragraph.config.schema import Config

logger = logging.getLogger(__name__)


def default_registry(cloud: SimulatedCloud | None = None) -> ProviderRegistry:
    """Create a fresh registry with the simulated provider for every catalog type."""
    cloud = cloud or SimulatedCloud()
    registry = ProviderRegistry()
    for spec in CATALOG:
        registry.register(spec.resource_type, SimulatedProvider(spec, cloud))
    return registry


def registry_from_config(config: Config) -> ProviderRegistry:
    """Built-in providers plus the plugins declared in ``provider.plugins``."""
    registry = default_registry(SimulatedCloud(config.provider.ledger_path))
    for resource_type, spec in config.provider.plugins.items():
        logger.debug("Loading provider plugin for %s: %s", resource_type, spec.call)
        provider = load_plugin(resource_type, spec, config.config_dir)
        registry.register(resource_type, provider, replace=True)
    return registry
