"""State records for tracking applied resources."""

import hashlib
import json
import uuid
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


def _canonical_json(obj: Any) -> str:
    # Stable encoding for hashes/digests. `default=str` keeps it robust for
    # datetimes/paths/etc while staying deterministic enough for our use.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def compute_attributes_hash(attrs: Mapping[str, Any]) -> str:
    """Compute a stable hash for a resource's stored attributes."""
    payload = _canonical_json(attrs)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ResourceInstance(BaseModel):
    """Last-applied record of one resource.

    Attributes:
        address: Unique resource address (e.g., "aws_vpc.main")
        resource_type: Type of the resource (e.g., "aws_vpc")
        name: Logical resource name (e.g., "main")
        id: Provider-assigned identifier (e.g., "vpc-0a1b2c3d")
        attributes: Resolved attribute values sent to the provider
        outputs: Values reported back by the provider (arn, dns_name, ...)
        attributes_hash: SHA256 hash of ``attributes`` for change detection
        dependencies: Addresses of dependencies at the time of apply
        created_at: When the resource was created
        updated_at: When the resource was last updated
    """

    address: str
    resource_type: str
    name: str
    id: str = ""
    attributes: dict[str, Any] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)
    attributes_hash: str = ""
    dependencies: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def value_of(self, attribute: str) -> Any:
        """Look up a referenceable value: ``id``, then outputs, then attributes."""
        if attribute == "id":
            return self.id
        if attribute in self.outputs:
            return self.outputs[attribute]
        return self.attributes.get(attribute)


class State(BaseModel):
    """Snapshot of every applied resource.

    Attributes:
        version: State file format version
        serial: Incremented on every write
        lineage: Identifies one state history; a new file gets a new lineage
        resources: Mapping of resource addresses to records
    """

    version: int = 1
    serial: int = 0
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    resources: dict[str, ResourceInstance] = Field(default_factory=dict)


def compute_state_digest(state: State) -> str:
    """Compute a stable digest of state content (excluding timestamps).

    Used for stale-plan detection. Timestamps are excluded so that they
    never force a re-plan.
    """
    resources = []
    for address, inst in sorted(state.resources.items(), key=lambda kv: kv[0]):
        resources.append(
            {
                "address": address,
                "resource_type": inst.resource_type,
                "name": inst.name,
                "id": inst.id,
                "attributes_hash": inst.attributes_hash,
                "outputs": inst.outputs,
                "dependencies": sorted(inst.dependencies),
            }
        )

    digestable = {
        "version": state.version,
        "lineage": state.lineage,
        "serial": state.serial,
        "resources": resources,
    }
    payload = _canonical_json(digestable)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
