"""Shared fixtures for unit tests."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any

import pytest

from infragraph.config import load
from infragraph.core.store import LocalStateStore
from infragraph.engine import Engine, ProviderRegistry, ProviderResult, ResourceProvider
from infragraph.resources import ResourceDeclaration

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from infragraph.config.schema import Config
    from infragraph.core.state import ResourceInstance
    from infragraph.engine import ProviderContext

_INFRAGRAPH_ENV_VARS = (
    "INFRAGRAPH_STATE_PATH",
    "INFRAGRAPH_PARALLELISM",
    "INFRAGRAPH_LOCK_TIMEOUT",
    "INFRAGRAPH_REGION",
    "INFRAGRAPH_ACCOUNT_ID",
    "INFRAGRAPH_LEDGER_PATH",
    "INFRAGRAPH_LOG",
)


@pytest.fixture(autouse=True)
def _clean_infragraph_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove INFRAGRAPH_* env vars so unit tests don't leak host config."""
    for var in _INFRAGRAPH_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """Factory fixture: write YAML + optional .env, return loaded Config."""

    def _make(yaml_str: str, *, dotenv: str | None = None) -> Config:
        (tmp_path / "config.yaml").write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load(tmp_path / "config.yaml")

    return _make


class InMemoryProvider(ResourceProvider):
    """Records calls; fails on demand for addresses listed in ``fail_on``."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.live: dict[str, dict[str, Any]] = {}
        self.fail_on: set[str] = set()
        self.required: tuple[str, ...] = ()
        self._lock = threading.Lock()
        self._counter = 0

    def _record(self, action: str, address: str) -> None:
        with self._lock:
            self.calls.append((action, address))
        if address in self.fail_on:
            raise RuntimeError(f"boom: {address}")

    def validate(self, ctx: ProviderContext, declaration: ResourceDeclaration) -> list[str]:
        _ = ctx
        return [f"missing '{a}'" for a in self.required if a not in declaration.attributes]

    def read(self, ctx: ProviderContext, prior: ResourceInstance) -> dict[str, Any] | None:
        _ = ctx
        attrs = self.live.get(prior.address)
        return dict(attrs) if attrs is not None else None

    def create(self, ctx: ProviderContext, address: str, attrs: dict[str, Any]) -> ProviderResult:
        _ = ctx
        self._record("create", address)
        with self._lock:
            self._counter += 1
            resource_id = f"id-{self._counter}"
            self.live[address] = dict(attrs)
        return ProviderResult(id=resource_id, outputs={"arn": f"arn:test:{resource_id}"})

    def update(
        self, ctx: ProviderContext, prior: ResourceInstance, attrs: dict[str, Any]
    ) -> dict[str, Any]:
        _ = ctx
        self._record("update", prior.address)
        with self._lock:
            self.live[prior.address] = dict(attrs)
        return {}

    def delete(self, ctx: ProviderContext, prior: ResourceInstance) -> None:
        _ = ctx
        self._record("delete", prior.address)
        with self._lock:
            self.live.pop(prior.address, None)

    def addresses(self, action: str) -> list[str]:
        return [addr for act, addr in self.calls if act == action]


@pytest.fixture
def provider() -> InMemoryProvider:
    return InMemoryProvider()


@pytest.fixture
def make_engine(
    tmp_path: Path, provider: InMemoryProvider
) -> Callable[..., Engine]:
    """Factory fixture: engine with ``test_*`` types served by the in-memory provider."""

    def _make(*, parallelism: int = 4, lock: bool = True) -> Engine:
        registry = ProviderRegistry()
        for resource_type in ("test_net", "test_lb", "test_app"):
            registry.register(resource_type, provider)
        state_path = tmp_path / "state.json"
        return Engine(
            registry=registry,
            store=LocalStateStore(state_path),
            parallelism=parallelism,
            lock_path=state_path if lock else None,
        )

    return _make


def decl(address: str, **attributes: Any) -> ResourceDeclaration:
    """Shorthand for a declaration; ``depends_on`` is passed through."""
    return ResourceDeclaration.from_address(address, attributes)


@pytest.fixture
def make_decl() -> Callable[..., ResourceDeclaration]:
    return decl
