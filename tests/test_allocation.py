import random
import threading

import pytest

from tests.helpers import ScriptedRandom
from tournament_progression import NO_SLOT_AVAILABLE, RoundLabelCycler, SlotAllocator


def test_allocator_never_returns_a_taken_slot():
    allocator = SlotAllocator(random.Random(1))
    allocator.seed_taken_slots("T1", range(1, 31))
    picks = {allocator.allocate_random_slot("T1") for _ in range(2)}
    assert picks == {31, 32}
    assert allocator.allocate_random_slot("T1") == NO_SLOT_AVAILABLE


def test_thirty_third_allocation_returns_sentinel():
    allocator = SlotAllocator(random.Random(42))
    slots = [allocator.allocate_random_slot("T1") for _ in range(32)]
    assert sorted(slots) == list(range(1, 33))
    assert allocator.allocate_random_slot("T1") == -1
    assert allocator.allocate_random_slot("T1") == -1


def test_seed_overwrites_previous_state():
    allocator = SlotAllocator(random.Random(3))
    allocator.seed_taken_slots("T1", {1, 2, 3})
    allocator.seed_taken_slots("T1", {5})
    assert allocator.taken_slots("T1") == {5}
    assert allocator.is_seeded("T1") is True
    assert allocator.is_seeded("T2") is False


def test_tournaments_are_independent():
    allocator = SlotAllocator(random.Random(5))
    allocator.seed_taken_slots("T1", range(1, 33))
    assert allocator.allocate_random_slot("T1") == NO_SLOT_AVAILABLE
    assert allocator.allocate_random_slot("T2") != NO_SLOT_AVAILABLE


def test_release_and_forget():
    allocator = SlotAllocator(ScriptedRandom([4]))
    allocator.seed_taken_slots("T1", set(range(1, 33)) - {4})
    assert allocator.allocate_random_slot("T1") == 4
    allocator.release_slot("T1", 4)
    assert 4 not in allocator.taken_slots("T1")
    allocator.forget("T1")
    assert allocator.is_seeded("T1") is False


def test_capacity_argument_limits_range():
    allocator = SlotAllocator(random.Random(9))
    slots = {allocator.allocate_random_slot("T1", capacity=4) for _ in range(4)}
    assert slots == {1, 2, 3, 4}
    assert allocator.allocate_random_slot("T1", capacity=4) == NO_SLOT_AVAILABLE


def test_concurrent_allocations_are_unique():
    allocator = SlotAllocator(random.Random(11))
    results: list[int] = []
    results_lock = threading.Lock()

    def worker():
        for _ in range(5):
            slot = allocator.allocate_random_slot("T1")
            with results_lock:
                results.append(slot)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assigned = [slot for slot in results if slot != NO_SLOT_AVAILABLE]
    assert sorted(assigned) == list(range(1, 33))
    assert results.count(NO_SLOT_AVAILABLE) == 8


class TestRoundLabelCycler:
    def test_rotates_through_labels(self):
        cycler = RoundLabelCycler()
        labels = [cycler.next_label("T1")[0] for _ in range(5)]
        assert labels == ["Round A", "Round B", "Round C", "Round D", "Round A"]

    def test_returns_index_with_label(self):
        cycler = RoundLabelCycler()
        assert cycler.next_label("T1") == ("Round A", 0)
        assert cycler.next_label("T1") == ("Round B", 1)

    def test_cursor_is_per_tournament(self):
        cycler = RoundLabelCycler()
        cycler.next_label("T1")
        cycler.next_label("T1")
        assert cycler.next_label("T2") == ("Round A", 0)
        assert cycler.next_label("T1") == ("Round C", 2)

    def test_seed_from_registration_count(self):
        cycler = RoundLabelCycler()
        cycler.seed("T1", 5)
        assert cycler.is_seeded("T1")
        assert cycler.next_label("T1") == ("Round B", 1)

    def test_requires_labels(self):
        with pytest.raises(ValueError):
            RoundLabelCycler(labels=[])
