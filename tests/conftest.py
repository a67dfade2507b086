from __future__ import annotations

import random

import pytest

from pocketpet.models.pet import Dna, Personality, PetState
from pocketpet.services.machine import ActionMachine
from pocketpet.services.persistence import RosterPersistence
from pocketpet.services.roster_store import RosterStore
from pocketpet.services.storage import MemoryBackend

NOW = 1_700_000_000_000


class FakeClock:
    def __init__(self, now: int = NOW) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FixedRandom:
    """Stands in for random.Random where only ``random()`` is used."""

    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_pet():
    def _make(**overrides) -> PetState:
        fields = dict(
            id="pet-1",
            name="Mochi",
            dna=Dna(),
            personality=Personality.CHEERFUL,
            created_at=NOW,
            last_updated=NOW,
            last_interaction_at=NOW,
            hunger=70.0,
            happiness=60.0,
            energy=70.0,
            health=100.0,
        )
        fields.update(overrides)
        return PetState(**fields)

    return _make


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend: MemoryBackend, clock: FakeClock) -> RosterStore:
    return RosterStore(RosterPersistence(backend), clock=clock, rng=random.Random(7))


@pytest.fixture
def machine(store: RosterStore) -> ActionMachine:
    # Messes never spawn, so vitals follow the closed-form rates exactly.
    return ActionMachine(store, rng=FixedRandom(1.0))
