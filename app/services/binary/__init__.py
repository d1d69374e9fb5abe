"""
Binary tree services package.

Contains modular services for placement and propagation:
- config: Pair tiers, star table and placement strategy
- balance_calculator: Subtree size by pointer traversal
- placement_resolver: Breadth-first open slot search
- ledger_writer: Idempotent pair records and earnings
- propagation_engine: Ancestor walk maintaining counters and pairs
- placement_orchestrator: Places members and runs propagation
"""

from app.services.binary.balance_calculator import TreeBalanceCalculator
from app.services.binary.config import (
    BinaryConfig,
    PairTierSchedule,
    StarLevelRule,
    default_star_levels,
    load_binary_config,
)
from app.services.binary.ledger_writer import LedgerWriter, LedgerWriteResult
from app.services.binary.placement_orchestrator import (
    PlacementOrchestrator,
    PlacementResult,
)
from app.services.binary.placement_resolver import (
    PlacementResolver,
    Slot,
    SlotRepair,
)
from app.services.binary.propagation_engine import (
    AncestorUpdate,
    PropagationCursor,
    PropagationEngine,
    PropagationResult,
)


__all__ = [
    # Configuration
    "BinaryConfig",
    "PairTierSchedule",
    "StarLevelRule",
    "default_star_levels",
    "load_binary_config",
    # Placement
    "PlacementOrchestrator",
    "PlacementResult",
    "PlacementResolver",
    "Slot",
    "SlotRepair",
    "TreeBalanceCalculator",
    # Propagation and ledger
    "AncestorUpdate",
    "LedgerWriter",
    "LedgerWriteResult",
    "PropagationCursor",
    "PropagationEngine",
    "PropagationResult",
]
