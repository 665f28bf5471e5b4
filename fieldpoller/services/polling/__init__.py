"""
Polling Layer

Responsibilities:
- Fan reads out across devices for one tick (orchestrator)
- Sanitize readings into storage-ready rows (normalizer)
- Prevent overlapping and duplicate cycles (guard)
- Tie the above to a sink for each trigger (service)
"""

from .guard import CycleGuard, CycleState
from .normalizer import Normalizer, ValidatedRow, derive_voltage, build_rules
from .orchestrator import ReadingOrchestrator, ReadingResult

__all__ = [
    "CycleGuard",
    "CycleState",
    "Normalizer",
    "ValidatedRow",
    "derive_voltage",
    "build_rules",
    "ReadingOrchestrator",
    "ReadingResult",
]
