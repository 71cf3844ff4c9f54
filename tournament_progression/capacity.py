"""Registration capacity predicates over a snapshot of registrations."""

from __future__ import annotations

from collections.abc import Iterable

from .models import TOURNAMENT_CAPACITY, Registration


def registration_count(
    tournament_id: str, registrations: Iterable[Registration]
) -> int:
    return sum(1 for entry in registrations if entry.tournament_id == tournament_id)


def remaining_slots(
    tournament_id: str,
    registrations: Iterable[Registration],
    capacity: int = TOURNAMENT_CAPACITY,
) -> int:
    """Return how many registration slots are still open for the tournament."""
    return max(0, capacity - registration_count(tournament_id, registrations))


def is_full(
    tournament_id: str,
    registrations: Iterable[Registration],
    capacity: int = TOURNAMENT_CAPACITY,
) -> bool:
    return remaining_slots(tournament_id, registrations, capacity) == 0


def taken_slot_numbers(
    tournament_id: str, registrations: Iterable[Registration]
) -> set[int]:
    return {
        entry.slot_number
        for entry in registrations
        if entry.tournament_id == tournament_id and entry.slot_number is not None
    }


__all__ = ["registration_count", "remaining_slots", "is_full", "taken_slot_numbers"]
