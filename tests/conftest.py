"""Shared fixtures for critterworld tests."""

from __future__ import annotations

import random
from typing import Iterable, List

import pytest

from critterworld.store import WorldStateStore


class SequenceRng:
    """Deterministic stand-in for ``random``: replays ``values`` then repeats the last one."""

    def __init__(self, values: Iterable[float]):
        self.values: List[float] = list(values) or [0.5]
        self.calls = 0

    def random(self) -> float:
        index = min(self.calls, len(self.values) - 1)
        self.calls += 1
        return self.values[index]

    def choice(self, seq):
        return seq[0]

    def uniform(self, a: float, b: float) -> float:
        return a + (b - a) * self.random()

    def sample(self, population, k: int):
        return list(population)[:k]


@pytest.fixture(autouse=True)
def _plain_output(monkeypatch):
    monkeypatch.setenv("CRITTERWORLD_NO_COLOR", "1")


@pytest.fixture
def fixed_rng():
    """Factory: ``fixed_rng(0.9, 0.1)`` replays those draws."""
    return lambda *values: SequenceRng(values)


@pytest.fixture
def seeded_rng():
    return random.Random(1234)


@pytest.fixture
def store(seeded_rng) -> WorldStateStore:
    return WorldStateStore.with_default_population(now=0.0, rng=seeded_rng)
