"""Configuration models for YAML-based declarations."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from infragraph.engine.executor import DEFAULT_PARALLELISM


class Settings(BaseSettings):
    """Engine settings.

    Fields can be set via YAML or environment variables with the
    ``INFRAGRAPH_`` prefix (e.g. ``INFRAGRAPH_PARALLELISM``).
    """

    model_config = SettingsConfigDict(env_prefix="INFRAGRAPH_", extra="forbid")

    state_path: Path = Path(".infragraph-state.json")
    parallelism: int = Field(default=DEFAULT_PARALLELISM, ge=1, le=256)
    lock_timeout: float | None = Field(default=None, ge=0)


def _plugin_shorthand(v: Any) -> Any:
    return {"call": v} if isinstance(v, str) else v


class PluginSpec(BaseModel):
    """A provider plugin: ``call`` names a factory, ``with`` its keyword arguments."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    call: str
    with_: dict[str, Any] = Field(default_factory=dict, alias="with")


class ProviderConfig(BaseSettings):
    """Provider settings shared by every resource type.

    ``plugins`` maps a resource type to the provider that should handle it
    instead of the built-in simulated provider.
    """

    model_config = SettingsConfigDict(env_prefix="INFRAGRAPH_", extra="forbid")

    region: str = "us-east-1"
    account_id: str = Field(default="000000000000", pattern=r"^\d{12}$")
    ledger_path: Path = Path(".infragraph-cloud.json")
    plugins: dict[str, Annotated[PluginSpec, BeforeValidator(_plugin_shorthand)]] = {}


def _none_to_dict(v: Any) -> Any:
    return v if v is not None else {}


class Config(BaseModel):
    """Declaration file - validates YAML structure directly."""

    model_config = ConfigDict(extra="forbid")

    settings: Settings = Field(default_factory=Settings)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    resources: Annotated[dict[str, dict[str, Any] | None], BeforeValidator(_none_to_dict)] = {}
    config_dir: Path = Path()

    @property
    def state_path(self) -> Path:
        return self.settings.state_path
