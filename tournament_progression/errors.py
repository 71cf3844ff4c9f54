from __future__ import annotations


class ProgressionError(Exception):
    """Base exception for bracket progression failures."""

    code = "progression_error"


class NotFoundError(ProgressionError):
    """Raised when a tournament, match code or record does not exist."""

    code = "not_found"


class CapacityExceededError(ProgressionError):
    """Raised when no registration slot is left in a tournament."""

    code = "capacity_exceeded"


class IncompletePreconditionError(ProgressionError):
    """Raised when a round is generated before its predecessor is decided."""

    code = "incomplete_precondition"


class IntegrityViolationError(ProgressionError):
    """Raised when generated matches do not fit the round layout."""

    code = "integrity_violation"


class PersistenceFailureError(ProgressionError):
    """Raised when the underlying record store rejects a read or write."""

    code = "persistence_failure"


class SlotConflictError(PersistenceFailureError):
    """Raised when another writer claimed the same slot first."""

    code = "slot_conflict"

    def __init__(self, tournament_id: str, slot_number: int) -> None:
        super().__init__(
            f"Slot {slot_number} already claimed in tournament {tournament_id}"
        )
        self.tournament_id = tournament_id
        self.slot_number = slot_number


__all__ = [
    "ProgressionError",
    "NotFoundError",
    "CapacityExceededError",
    "IncompletePreconditionError",
    "IntegrityViolationError",
    "PersistenceFailureError",
    "SlotConflictError",
]
