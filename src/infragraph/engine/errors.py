"""Engine error types."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from infragraph.engine.types import ApplyResult
    from infragraph.resources.expressions import Reference


class EngineError(Exception):
    """Base exception for engine errors."""


class UnknownResourceTypeError(EngineError):
    """Raised when a resource type has no registered provider."""

    def __init__(self, resource_type: str) -> None:
        super().__init__(f"Unknown resource type: {resource_type}")
        self.resource_type = resource_type


class DuplicateAddressError(EngineError):
    """Raised when multiple declarations share the same address."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Duplicate resource address: {address}")
        self.address = address


class CycleDetected(EngineError):
    """Raised when declarations reference each other in a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        msg = "Dependency cycle detected"
        if cycle:
            msg += f": {' -> '.join(cycle)}"
        super().__init__(msg)
        self.cycle = cycle


class UnresolvedReference(EngineError):
    """Raised when an expression references an undeclared resource."""

    def __init__(self, missing: list[tuple[str, Reference | str]]) -> None:
        self.missing = missing
        lines = [
            f"  - {source} references unknown resource '{_target(ref)}'" for source, ref in missing
        ]
        super().__init__("Unresolved references:\n" + "\n".join(lines))


def _target(ref: Reference | str) -> str:
    return ref if isinstance(ref, str) else ref.address


class ValidationError(EngineError):
    """One or more declarations failed provider validation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        msg = "Validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(msg)


class ProviderError(EngineError):
    """A provider call failed for a single resource.

    The original exception is chained via ``__cause__``.
    """

    def __init__(self, address: str, action: str, message: str) -> None:
        super().__init__(f"{action} {address} failed: {message}")
        self.address = address
        self.action = action
        self.message = message


class StateStoreError(EngineError):
    """Raised when state cannot be loaded or persisted."""


class StateLockError(EngineError):
    """Raised when the state lock cannot be acquired or released."""


class StalePlanError(EngineError):
    """Raised when applying a plan against a different state than planned."""


class ApplyCanceled(EngineError):
    """Raised when an apply is canceled (e.g., Ctrl-C).

    Carries the partial result so callers can report what finished.
    """

    def __init__(self, message: str, *, result: ApplyResult | None = None) -> None:
        super().__init__(message)
        self.result = result
