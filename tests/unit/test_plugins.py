from __future__ import annotations

import sys
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import pytest

from infragraph.config.plugins import ENTRY_POINT_GROUP, PluginError, load_plugin
from infragraph.config.registry import registry_from_config
from infragraph.config.schema import Config, PluginSpec, ProviderConfig
from infragraph.engine.providers import ResourceProvider
from infragraph.providers.simulated import SimulatedProvider

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

_PLUGIN_SOURCE = """\
from infragraph.engine.providers import ProviderResult, ResourceProvider


class TaggingProvider(ResourceProvider):
    def __init__(self, prefix="tag"):
        self.prefix = prefix

    def create(self, ctx, address, attrs):
        return ProviderResult(id=f"{self.prefix}-{address}")


def make_provider(**kwargs):
    return TaggingProvider(**kwargs)


def not_a_provider():
    return object()


def exploding():
    raise RuntimeError("credentials missing")


NOT_CALLABLE = 42
"""


@pytest.fixture
def plugin_module(tmp_path: Path) -> Iterator[Callable[[str], str]]:
    """Write the plugin source under a per-test module name."""
    names: list[str] = []

    def _write(name: str) -> str:
        (tmp_path / f"{name}.py").write_text(_PLUGIN_SOURCE)
        names.append(name)
        return name

    yield _write
    for name in names:
        sys.modules.pop(name, None)


class TestLoadPlugin:
    def test_local_module_colon_syntax(
        self, plugin_module: Callable[[str], str], tmp_path: Path
    ) -> None:
        mod = plugin_module("ig_plugin_colon")
        spec = PluginSpec.model_validate(
            {"call": f"{mod}:TaggingProvider", "with": {"prefix": "p"}}
        )
        provider = load_plugin("aws_vpc", spec, tmp_path)
        assert isinstance(provider, ResourceProvider)
        assert provider.prefix == "p"  # type: ignore[attr-defined]

    def test_local_module_dotted_syntax(
        self, plugin_module: Callable[[str], str], tmp_path: Path
    ) -> None:
        mod = plugin_module("ig_plugin_dotted")
        provider = load_plugin("aws_vpc", PluginSpec(call=f"{mod}.make_provider"), tmp_path)
        assert provider.prefix == "tag"  # type: ignore[attr-defined]

    def test_installed_module(self, tmp_path: Path) -> None:
        call = "infragraph.engine.providers:ResourceProvider"
        provider = load_plugin("aws_vpc", PluginSpec(call=call), tmp_path)
        assert type(provider) is ResourceProvider

    def test_missing_module(self, tmp_path: Path) -> None:
        with pytest.raises(PluginError, match="not found"):
            load_plugin("aws_vpc", PluginSpec(call="ig_nowhere:Provider"), tmp_path)

    def test_missing_attribute(self, plugin_module: Callable[[str], str], tmp_path: Path) -> None:
        mod = plugin_module("ig_plugin_missing_attr")
        with pytest.raises(PluginError, match="no attribute 'Nope'"):
            load_plugin("aws_vpc", PluginSpec(call=f"{mod}:Nope"), tmp_path)

    def test_attribute_not_callable(
        self, plugin_module: Callable[[str], str], tmp_path: Path
    ) -> None:
        mod = plugin_module("ig_plugin_not_callable")
        with pytest.raises(PluginError, match="not callable"):
            load_plugin("aws_vpc", PluginSpec(call=f"{mod}:NOT_CALLABLE"), tmp_path)

    def test_factory_must_return_provider(
        self, plugin_module: Callable[[str], str], tmp_path: Path
    ) -> None:
        mod = plugin_module("ig_plugin_wrong_type")
        with pytest.raises(PluginError, match="must return a ResourceProvider, got object"):
            load_plugin("aws_vpc", PluginSpec(call=f"{mod}:not_a_provider"), tmp_path)

    def test_factory_exception_is_wrapped(
        self, plugin_module: Callable[[str], str], tmp_path: Path
    ) -> None:
        mod = plugin_module("ig_plugin_exploding")
        with pytest.raises(PluginError, match="raised RuntimeError: credentials missing"):
            load_plugin("aws_vpc", PluginSpec(call=f"{mod}:exploding"), tmp_path)

    def test_invalid_syntax(self, tmp_path: Path) -> None:
        with pytest.raises(PluginError, match="Invalid plugin syntax"):
            load_plugin("aws_vpc", PluginSpec(call="module:"), tmp_path)

    @patch("importlib.metadata.entry_points")
    def test_entry_point_lookup(self, mock_eps: MagicMock, tmp_path: Path) -> None:
        ep = MagicMock()
        ep.load.return_value = ResourceProvider
        mock_eps.return_value = [ep]

        provider = load_plugin("aws_vpc", PluginSpec(call="acme"), tmp_path)

        assert type(provider) is ResourceProvider
        mock_eps.assert_called_once_with(group=ENTRY_POINT_GROUP, name="acme")

    @patch("importlib.metadata.entry_points", return_value=[])
    def test_missing_entry_point(self, mock_eps: MagicMock, tmp_path: Path) -> None:
        _ = mock_eps
        with pytest.raises(PluginError, match="No entry point found for 'acme'"):
            load_plugin("aws_vpc", PluginSpec(call="acme"), tmp_path)


class TestRegistryFromConfig:
    def test_plugin_replaces_builtin_provider(
        self, plugin_module: Callable[[str], str], tmp_path: Path
    ) -> None:
        mod = plugin_module("ig_plugin_registry")
        config = Config(
            provider=ProviderConfig(plugins={"aws_vpc": f"{mod}:TaggingProvider"}),
            config_dir=tmp_path,
        )

        registry = registry_from_config(config)

        assert not isinstance(registry.get("aws_vpc"), SimulatedProvider)
        assert isinstance(registry.get("aws_subnet"), SimulatedProvider)

    def test_plugin_can_add_new_type(
        self, plugin_module: Callable[[str], str], tmp_path: Path
    ) -> None:
        mod = plugin_module("ig_plugin_new_type")
        config = Config(
            provider=ProviderConfig(plugins={"acme_widget": {"call": f"{mod}:make_provider"}}),
            config_dir=tmp_path,
        )

        registry = registry_from_config(config)

        assert "acme_widget" in registry
