"""Single-elimination bracket progression and slot allocation."""

from .allocation import NO_SLOT_AVAILABLE, RoundLabelCycler, SlotAllocator
from .capacity import is_full, remaining_slots
from .errors import (
    CapacityExceededError,
    IncompletePreconditionError,
    IntegrityViolationError,
    NotFoundError,
    PersistenceFailureError,
    ProgressionError,
    SlotConflictError,
)
from .integrity import IntegrityReport, validate_integrity
from .models import (
    FINAL,
    QUARTERFINAL,
    ROUND_OF_16,
    ROUND_OF_32,
    SEMIFINAL,
    THIRD_PLACE_MATCH,
    BracketProgression,
    MatchSide,
    MatchSlot,
    Registration,
    RoundState,
    Tournament,
    utc_now_iso,
)
from .service import OperationResult, ProgressionService
from .storage import TournamentStorage
from .validation import InvalidValueError

__all__ = [
    "NO_SLOT_AVAILABLE",
    "RoundLabelCycler",
    "SlotAllocator",
    "is_full",
    "remaining_slots",
    "CapacityExceededError",
    "IncompletePreconditionError",
    "IntegrityViolationError",
    "NotFoundError",
    "PersistenceFailureError",
    "ProgressionError",
    "SlotConflictError",
    "IntegrityReport",
    "validate_integrity",
    "FINAL",
    "QUARTERFINAL",
    "ROUND_OF_16",
    "ROUND_OF_32",
    "SEMIFINAL",
    "THIRD_PLACE_MATCH",
    "BracketProgression",
    "MatchSide",
    "MatchSlot",
    "Registration",
    "RoundState",
    "Tournament",
    "utc_now_iso",
    "OperationResult",
    "ProgressionService",
    "TournamentStorage",
    "InvalidValueError",
]
