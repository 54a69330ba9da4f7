"""Shopping list to inventory reconciliation."""

from .engine import ReconciliationEngine, entry_state, reconcile
from .sweeper import ReconciliationSweeper

__all__ = ["ReconciliationEngine", "ReconciliationSweeper", "entry_state", "reconcile"]
