"""Plan and apply engine for declarative resource graphs."""

from infragraph.engine.engine import Engine
from infragraph.engine.errors import (
    ApplyCanceled,
    CycleDetected,
    DuplicateAddressError,
    EngineError,
    ProviderError,
    StalePlanError,
    StateLockError,
    StateStoreError,
    UnknownResourceTypeError,
    UnresolvedReference,
    ValidationError,
)
from infragraph.engine.executor import Executor
from infragraph.engine.graph import DependencyEdge, ResourceGraph, build_graph
from infragraph.engine.planner import Planner
from infragraph.engine.providers import ProviderContext, ProviderResult, ResourceProvider
from infragraph.engine.registry import ProviderRegistry
from infragraph.engine.types import (
    Action,
    ActionOutcome,
    ApplyResult,
    Outcome,
    Plan,
    PlanMetadata,
    ResourceChange,
)

__all__ = [
    "Action",
    "ActionOutcome",
    "ApplyCanceled",
    "ApplyResult",
    "CycleDetected",
    "DependencyEdge",
    "DuplicateAddressError",
    "Engine",
    "EngineError",
    "Executor",
    "Outcome",
    "Plan",
    "PlanMetadata",
    "Planner",
    "ProviderContext",
    "ProviderError",
    "ProviderRegistry",
    "ProviderResult",
    "ResourceChange",
    "ResourceGraph",
    "ResourceProvider",
    "StalePlanError",
    "StateLockError",
    "StateStoreError",
    "UnknownResourceTypeError",
    "UnresolvedReference",
    "ValidationError",
    "build_graph",
]
