"""Slot allocation and administrative round labels for new registrants.

Both helpers hold process-local state that is derived from the persisted
registrations. Callers re-seed them from storage before first use for a
tournament; the stored registrations remain the source of truth.
"""

from __future__ import annotations

import random
import threading
from collections.abc import Iterable
from typing import Final

from .models import TOURNAMENT_CAPACITY

NO_SLOT_AVAILABLE: Final = -1
ROUND_LABELS: Final = ("Round A", "Round B", "Round C", "Round D")


class SlotAllocator:
    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()
        self._taken: dict[str, set[int]] = {}
        self._lock = threading.Lock()

    def seed_taken_slots(self, tournament_id: str, slots: Iterable[int]) -> None:
        with self._lock:
            self._taken[tournament_id] = set(slots)

    def is_seeded(self, tournament_id: str) -> bool:
        with self._lock:
            return tournament_id in self._taken

    def taken_slots(self, tournament_id: str) -> set[int]:
        with self._lock:
            return set(self._taken.get(tournament_id, set()))

    def allocate_random_slot(
        self, tournament_id: str, capacity: int = TOURNAMENT_CAPACITY
    ) -> int:
        """Pick a free slot uniformly at random and mark it taken.

        Returns ``NO_SLOT_AVAILABLE`` when every slot in ``1..capacity`` is
        already taken.
        """
        with self._lock:
            taken = self._taken.setdefault(tournament_id, set())
            available = [slot for slot in range(1, capacity + 1) if slot not in taken]
            if not available:
                return NO_SLOT_AVAILABLE
            selected = self._rng.choice(available)
            taken.add(selected)
            return selected

    def release_slot(self, tournament_id: str, slot_number: int) -> None:
        with self._lock:
            self._taken.get(tournament_id, set()).discard(slot_number)

    def forget(self, tournament_id: str) -> None:
        with self._lock:
            self._taken.pop(tournament_id, None)


class RoundLabelCycler:
    """Round-robin over ``ROUND_LABELS``, one cursor per tournament."""

    def __init__(self, labels: Iterable[str] = ROUND_LABELS) -> None:
        self._labels = tuple(labels)
        if not self._labels:
            raise ValueError("At least one round label is required")
        self._cursor: dict[str, int] = {}
        self._lock = threading.Lock()

    def seed(self, tournament_id: str, registration_count: int) -> None:
        with self._lock:
            self._cursor[tournament_id] = registration_count % len(self._labels)

    def is_seeded(self, tournament_id: str) -> bool:
        with self._lock:
            return tournament_id in self._cursor

    def next_label(self, tournament_id: str) -> tuple[str, int]:
        with self._lock:
            index = self._cursor.get(tournament_id, 0) % len(self._labels)
            self._cursor[tournament_id] = index + 1
            return self._labels[index], index

    def forget(self, tournament_id: str) -> None:
        with self._lock:
            self._cursor.pop(tournament_id, None)


__all__ = ["NO_SLOT_AVAILABLE", "ROUND_LABELS", "SlotAllocator", "RoundLabelCycler"]
