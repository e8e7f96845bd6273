"""A provider plugin that tightens validation for S3 buckets.

Loaded through ``provider.plugins`` in ``infragraph.yaml``; the ``with``
mapping is passed to ``StrictBucketProvider`` as keyword arguments.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from infragraph.providers.simulated import SimulatedCloud, SimulatedProvider
from infragraph.resources.catalog import CATALOG

if TYPE_CHECKING:
    from infragraph.engine.providers import ProviderContext
    from infragraph.resources.base import ResourceDeclaration

logger = logging.getLogger(__name__)

_BUCKET_RE = re.compile(r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$")


class StrictBucketProvider(SimulatedProvider):
    """Simulated buckets whose names must be valid and carry *prefix*."""

    def __init__(self, prefix: str = "", ledger_path: str = ".buckets-ledger.json") -> None:
        spec = next(s for s in CATALOG if s.resource_type == "aws_s3_bucket")
        super().__init__(spec, SimulatedCloud(Path(ledger_path)))
        self.prefix = prefix

    def validate(self, ctx: ProviderContext, declaration: ResourceDeclaration) -> list[str]:
        errors = super().validate(ctx, declaration)
        name = declaration.attributes.get("bucket")
        if isinstance(name, str) and "${" not in name:
            if not _BUCKET_RE.match(name):
                errors.append(f"invalid bucket name '{name}'")
            if not name.startswith(self.prefix):
                errors.append(f"bucket name must start with '{self.prefix}'")
        return errors
