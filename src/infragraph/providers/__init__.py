"""Built-in resource providers."""

from infragraph.providers.simulated import LedgerError, SimulatedCloud, SimulatedProvider

__all__ = ["LedgerError", "SimulatedCloud", "SimulatedProvider"]
