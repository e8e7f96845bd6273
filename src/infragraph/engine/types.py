"""Engine types (plan, changes, outcomes)."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NOOP = "no-op"


class Outcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    UNCHANGED = "unchanged"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELED = "canceled"


_SUCCESS_OUTCOME: dict[Action, Outcome] = {
    Action.CREATE: Outcome.CREATED,
    Action.UPDATE: Outcome.UPDATED,
    Action.DELETE: Outcome.DELETED,
    Action.NOOP: Outcome.UNCHANGED,
}


def success_outcome(action: Action) -> Outcome:
    return _SUCCESS_OUTCOME[action]


class PlanMetadata(BaseModel):
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    destroy: bool
    refresh: bool
    state_lineage: str
    state_serial: int
    state_digest: str
    config_digest: str
    engine_version: str


class ResourceChange(BaseModel):
    """One planned action.

    ``desired`` holds the declared attribute expressions (references intact),
    ``planned`` the values resolved at plan time, ``diff`` the changed keys as
    ``{"from": ..., "to": ...}``.
    """

    address: str
    resource_type: str
    action: Action
    desired: dict[str, Any] | None = None
    prior: dict[str, Any] | None = None
    planned: dict[str, Any] | None = None
    diff: dict[str, Any] | None = None
    dependencies: list[str] = Field(default_factory=list)


class Plan(BaseModel):
    metadata: PlanMetadata
    changes: list[ResourceChange]

    def summary(self) -> dict[str, int]:
        counts = {a.value: 0 for a in Action}
        for c in self.changes:
            counts[c.action.value] += 1
        return counts

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> Plan:
        path = Path(path)
        return cls.model_validate_json(path.read_text(encoding="utf-8"))


class ActionOutcome(BaseModel):
    """Final status of one resource after an apply."""

    address: str
    resource_type: str
    action: Action
    outcome: Outcome
    error: str | None = None
    blocked_by: str | None = None


class ApplyResult(BaseModel):
    outcomes: list[ActionOutcome] = Field(default_factory=list)

    def summary(self) -> dict[str, int]:
        counts = {o.value: 0 for o in Outcome}
        for item in self.outcomes:
            counts[item.outcome.value] += 1
        return counts

    def by_outcome(self, outcome: Outcome) -> list[ActionOutcome]:
        return [item for item in self.outcomes if item.outcome == outcome]

    @property
    def ok(self) -> bool:
        """True when nothing failed, was skipped, or was canceled."""
        bad = {Outcome.FAILED, Outcome.SKIPPED, Outcome.CANCELED}
        return not any(item.outcome in bad for item in self.outcomes)
