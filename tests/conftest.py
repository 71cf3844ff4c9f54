from __future__ import annotations

import random

import pytest

from tests.helpers import FakeTable
from tournament_progression import ProgressionService, SlotAllocator, TournamentStorage


@pytest.fixture
def table() -> FakeTable:
    return FakeTable()


@pytest.fixture
def storage(table: FakeTable) -> TournamentStorage:
    return TournamentStorage(table)


@pytest.fixture
def service(storage: TournamentStorage) -> ProgressionService:
    return ProgressionService(storage, allocator=SlotAllocator(random.Random(7)))
