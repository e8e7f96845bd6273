"""YAML declaration file loader."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML

from infragraph.config.schema import Config
from infragraph.resources.base import ResourceDeclaration

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised for declaration file loading / validation errors."""


# Section → field name → environment variable.
_ENV_MAP: dict[str, dict[str, str]] = {
    "settings": {
        "state_path": "INFRAGRAPH_STATE_PATH",
        "parallelism": "INFRAGRAPH_PARALLELISM",
        "lock_timeout": "INFRAGRAPH_LOCK_TIMEOUT",
    },
    "provider": {
        "region": "INFRAGRAPH_REGION",
        "account_id": "INFRAGRAPH_ACCOUNT_ID",
        "ledger_path": "INFRAGRAPH_LEDGER_PATH",
    },
}


def _resolve_section(
    section: str, raw_section: dict[str, Any], dotenv_vals: dict[str, str | None]
) -> dict[str, Any]:
    """Fill unset fields of *raw_section* from env vars, then the ``.env`` file.

    Priority (highest wins): YAML value > env var > ``.env`` file.
    """
    resolved = dict(raw_section)
    for field, env_key in _ENV_MAP[section].items():
        val = resolved.get(field)
        if val is None:
            val = os.environ.get(env_key)
        if val is None:
            val = dotenv_vals.get(env_key)
        if val is not None:
            resolved[field] = val
    return resolved


def _resolve_path(path: Path, config_dir: Path) -> Path:
    return path if path.is_absolute() else config_dir / path


def build_declarations(config: Config) -> list[ResourceDeclaration]:
    """Turn the ``resources`` mapping into declarations, in file order.

    Raises:
        ConfigError: Listing every malformed entry.
    """
    declarations: list[ResourceDeclaration] = []
    errors: list[str] = []
    for address, body in config.resources.items():
        try:
            declarations.append(ResourceDeclaration.from_address(address, body))
        except ValueError as exc:
            errors.append(f"{address}: {exc}")
    if errors:
        raise ConfigError("Invalid resources:\n" + "\n".join(f"  - {e}" for e in errors))
    return declarations


def load_config(path: Path | str) -> Config:
    """Load a YAML declaration file and return a ``Config`` object.

    Raises:
        ConfigError: On YAML parse errors, unknown sections, or validation failures.
    """
    path = Path(path)

    try:
        raw = YAML(typ="safe").load(path)
    except Exception as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")

    env_file = path.parent / ".env"
    dotenv_vals = dotenv_values(env_file, encoding="utf-8-sig") if env_file.is_file() else {}

    try:
        for section in _ENV_MAP:
            raw[section] = _resolve_section(section, raw.get(section) or {}, dotenv_vals)
        config = Config.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc

    config.config_dir = path.parent
    config.settings.state_path = _resolve_path(config.settings.state_path, config.config_dir)
    config.provider.ledger_path = _resolve_path(config.provider.ledger_path, config.config_dir)

    # Validate declarations eagerly so malformed entries surface at load time.
    build_declarations(config)

    logger.info("Loaded config from %s (%d resources)", path, len(config.resources))
    return config
