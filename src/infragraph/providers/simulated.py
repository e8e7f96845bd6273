"""Simulated AWS provider backed by a local JSON ledger.

Implements the provider contract for every catalog type without talking to
AWS: resources live in a ``SimulatedCloud`` ledger, get AWS-looking ids and
ARNs, and can be inspected or tampered with to exercise refresh/drift.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

from infragraph.engine.errors import EngineError
from infragraph.engine.providers import ProviderResult, ResourceProvider

if TYPE_CHECKING:
    from infragraph.core.state import ResourceInstance
    from infragraph.engine.providers import ProviderContext
    from infragraph.resources.base import ResourceDeclaration
    from infragraph.resources.catalog import ResourceTypeSpec

logger = logging.getLogger(__name__)


class LedgerError(EngineError):
    """Raised when the simulated cloud ledger cannot be read."""


class SimulatedCloud:
    """Thread-safe ledger of live resources, optionally persisted to JSON.

    Entries are keyed by resource id::

        {"vpc-1a2b3c4d": {"type": "aws_vpc", "attributes": {...}, "outputs": {...}}}
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._entries: dict[str, dict[str, Any]] = self._read()

    def _read(self) -> dict[str, dict[str, Any]]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise LedgerError(f"Failed to read ledger {self._path}: {exc}") from exc

    def _flush(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(self._entries, indent=2, sort_keys=True) + "\n"
        fd, tmp_path = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=str(self._path.parent))
        tmp_file = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            tmp_file.replace(self._path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                tmp_file.unlink()

    @staticmethod
    def new_id(prefix: str) -> str:
        return f"{prefix}-{uuid.uuid4().hex[:8]}"

    def get(self, resource_id: str) -> dict[str, Any] | None:
        with self._lock:
            entry = self._entries.get(resource_id)
            return json.loads(json.dumps(entry)) if entry is not None else None

    def put(self, resource_id: str, entry: dict[str, Any]) -> None:
        with self._lock:
            self._entries[resource_id] = entry
            self._flush()

    def delete(self, resource_id: str) -> bool:
        with self._lock:
            existed = self._entries.pop(resource_id, None) is not None
            if existed:
                self._flush()
            return existed

    def ids(self, resource_type: str | None = None) -> list[str]:
        with self._lock:
            return sorted(
                rid
                for rid, entry in self._entries.items()
                if resource_type is None or entry.get("type") == resource_type
            )


class SimulatedProvider(ResourceProvider):
    """Provider for one catalog resource type, operating on a ``SimulatedCloud``."""

    def __init__(self, spec: ResourceTypeSpec, cloud: SimulatedCloud) -> None:
        self._spec = spec
        self._cloud = cloud

    @property
    def spec(self) -> ResourceTypeSpec:
        return self._spec

    def validate(self, ctx: ProviderContext, declaration: ResourceDeclaration) -> list[str]:
        _ = ctx
        return [
            f"missing required attribute '{attr}'"
            for attr in self._spec.required
            if attr not in declaration.attributes
        ]

    def _arn(self, ctx: ProviderContext, resource_id: str) -> str:
        spec = self._spec
        scope = f"{ctx.region}:{ctx.account_id}"
        return f"arn:aws:{spec.service}:{scope}:{spec.id_prefix}/{resource_id}"

    def _outputs(
        self,
        ctx: ProviderContext,
        resource_id: str,
        attrs: dict[str, Any],
        prior: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        outputs: dict[str, Any] = {"arn": self._arn(ctx, resource_id)}
        for name in self._spec.outputs:
            match name:
                case "repository_url":
                    repo = attrs.get("name", resource_id)
                    value: Any = f"{ctx.account_id}.dkr.ecr.{ctx.region}.amazonaws.com/{repo}"
                case "dns_name":
                    value = f"{resource_id}.{ctx.region}.elb.amazonaws.com"
                case "bucket_domain_name":
                    value = f"{attrs.get('bucket', resource_id)}.s3.amazonaws.com"
                case "revision":
                    value = int((prior or {}).get("revision", 0)) + 1
                case "default_route_table_id":
                    value = (prior or {}).get(name) or self._cloud.new_id("rtb")
                case _:
                    value = (prior or {}).get(name) or f"{resource_id}-{name}"
            outputs[name] = value
        return outputs

    def create(self, ctx: ProviderContext, address: str, attrs: dict[str, Any]) -> ProviderResult:
        resource_id = self._cloud.new_id(self._spec.id_prefix)
        outputs = self._outputs(ctx, resource_id, attrs)
        self._cloud.put(
            resource_id,
            {
                "type": self._spec.resource_type,
                "address": address,
                "attributes": attrs,
                "outputs": outputs,
            },
        )
        logger.debug("Created %s as %s", address, resource_id)
        return ProviderResult(id=resource_id, outputs=outputs)

    def read(self, ctx: ProviderContext, prior: ResourceInstance) -> dict[str, Any] | None:
        _ = ctx
        entry = self._cloud.get(prior.id)
        if entry is None:
            return None
        return entry["attributes"]

    def update(
        self, ctx: ProviderContext, prior: ResourceInstance, attrs: dict[str, Any]
    ) -> dict[str, Any]:
        entry = self._cloud.get(prior.id)
        if entry is None:
            raise LookupError(f"{self._spec.resource_type} {prior.id} does not exist")
        outputs = self._outputs(ctx, prior.id, attrs, prior=entry.get("outputs"))
        entry.update(attributes=attrs, outputs=outputs)
        self._cloud.put(prior.id, entry)
        logger.debug("Updated %s (%s)", prior.address, prior.id)
        return outputs

    def delete(self, ctx: ProviderContext, prior: ResourceInstance) -> None:
        _ = ctx
        if not self._cloud.delete(prior.id):
            # Already gone - nothing to do.
            logger.debug("%s (%s) was already deleted", prior.address, prior.id)
