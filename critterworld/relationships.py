"""Symmetric pairwise affinity between entities.

Affinity is stored sparsely keyed by the sorted pair ``"a:b"`` so lookups are
order independent. Unseen pairs read as 0.

Affinity does not fade on its own. Whether it should is a policy choice, kept
out of the ledger functions: the simulation driver owns an
``AffinityDecayPolicy`` and the default :class:`StickyAffinityPolicy` leaves
every score untouched.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict


RelationshipMap = Dict[str, float]

APPROACH_THRESHOLD = 0.3
AVOID_THRESHOLD = -0.3


def pair_key(a: str, b: str) -> str:
    first, second = sorted((a, b))
    return f"{first}:{second}"


def get_affinity(relationships: RelationshipMap, a: str, b: str) -> float:
    return relationships.get(pair_key(a, b), 0.0)


def adjust_affinity(relationships: RelationshipMap, a: str, b: str, delta: float) -> RelationshipMap:
    """Return a new map with the pair's affinity shifted by ``delta`` and clamped."""
    key = pair_key(a, b)
    updated = dict(relationships)
    updated[key] = max(-1.0, min(1.0, relationships.get(key, 0.0) + delta))
    return updated


def should_approach(affinity: float) -> bool:
    return affinity > APPROACH_THRESHOLD


def should_avoid(affinity: float) -> bool:
    return affinity < AVOID_THRESHOLD


def dialogue_probability_multiplier(affinity: float) -> float:
    """Friends chat more often, rivals less (0.25x .. 1.75x)."""
    return 1.0 + affinity * 0.75


def relationship_to_dialogue_context(affinity: float, target_name: str) -> str:
    if affinity > 0.6:
        feeling = "a close friend"
    elif affinity > 0.3:
        feeling = "a friend"
    elif affinity > -0.1:
        feeling = "an acquaintance"
    elif affinity > -0.4:
        feeling = "someone you are wary of"
    else:
        feeling = "someone you dislike"
    return f"{target_name} is {feeling}."


class AffinityDecayPolicy(ABC):
    """How relationship scores evolve without interaction."""

    @abstractmethod
    def decay(self, relationships: RelationshipMap, delta_seconds: float) -> RelationshipMap:
        """Return the map after ``delta_seconds`` with no interactions."""


class StickyAffinityPolicy(AffinityDecayPolicy):
    """Relationships persist indefinitely once formed."""

    def decay(self, relationships: RelationshipMap, delta_seconds: float) -> RelationshipMap:
        return relationships


class DecayingAffinityPolicy(AffinityDecayPolicy):
    """Linear fade toward neutral at ``rate`` affinity units per second."""

    def __init__(self, rate: float = 0.0005) -> None:
        self.rate = rate

    def decay(self, relationships: RelationshipMap, delta_seconds: float) -> RelationshipMap:
        step = self.rate * max(0.0, delta_seconds)
        if step <= 0.0 or not relationships:
            return relationships

        faded: RelationshipMap = {}
        for key, value in relationships.items():
            if value > 0:
                faded[key] = max(0.0, value - step)
            else:
                faded[key] = min(0.0, value + step)
        return faded


__all__ = [
    "RelationshipMap",
    "pair_key",
    "get_affinity",
    "adjust_affinity",
    "should_approach",
    "should_avoid",
    "dialogue_probability_multiplier",
    "relationship_to_dialogue_context",
    "AffinityDecayPolicy",
    "StickyAffinityPolicy",
    "DecayingAffinityPolicy",
]
