"""Core state components."""

from infragraph.core.state import ResourceInstance, State, compute_state_digest
from infragraph.core.store import LocalStateStore, StateStore

__all__ = ["LocalStateStore", "ResourceInstance", "State", "StateStore", "compute_state_digest"]
