"""Activity selection: a pure decision function over emotion, needs and surroundings.

The selector is deterministic given an ``rng``. Rules are evaluated in a fixed
order and the first one that fires wins; most rules are probabilistic so the
fall-through rolls keep behaviour varied.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Sequence, Tuple

from .relationships import RelationshipMap, get_affinity, should_approach
from .resources import CRITTER_FOOD_TYPES, ROBOT_ENERGY_TYPES, get_nearby
from .schemas import (
    ActivityKind,
    ActivityState,
    Desire,
    EmotionState,
    EntityKind,
    Position,
    ResourceNode,
    Weather,
)


@dataclass(frozen=True)
class MovementPattern:
    wander_radius: float
    speed_multiplier: float
    pause_chance: float
    home_affinity: float


ACTIVITY_PATTERNS: Dict[ActivityKind, MovementPattern] = {
    ActivityKind.IDLE: MovementPattern(15, 0.5, 0.6, 0.3),
    ActivityKind.EXPLORE: MovementPattern(70, 1.2, 0.1, 0.05),
    ActivityKind.FORAGE: MovementPattern(40, 0.8, 0.25, 0.3),
    ActivityKind.REST: MovementPattern(0, 0.0, 1.0, 1.0),
    ActivityKind.SOCIALIZE: MovementPattern(12, 1.0, 0.2, 0.1),
    ActivityKind.FLEE: MovementPattern(0, 1.8, 0.0, 0.9),
    ActivityKind.PATROL: MovementPattern(35, 0.9, 0.15, 0.4),
    ActivityKind.SEEK_RESOURCE: MovementPattern(50, 1.1, 0.05, 0.0),
}

ACTIVITY_DURATIONS: Dict[ActivityKind, Tuple[float, float]] = {
    ActivityKind.IDLE: (3, 8),
    ActivityKind.EXPLORE: (10, 25),
    ActivityKind.FORAGE: (8, 20),
    ActivityKind.REST: (15, 40),
    ActivityKind.SOCIALIZE: (8, 15),
    ActivityKind.FLEE: (5, 10),
    ActivityKind.PATROL: (10, 20),
    ActivityKind.SEEK_RESOURCE: (10, 30),
}

# Actions a generated thought may request, per entity kind.
VALID_ACTIONS: Dict[EntityKind, FrozenSet[ActivityKind]] = {
    EntityKind.ROBOT: frozenset(
        {
            ActivityKind.EXPLORE,
            ActivityKind.FORAGE,
            ActivityKind.REST,
            ActivityKind.SOCIALIZE,
            ActivityKind.SEEK_RESOURCE,
            ActivityKind.PATROL,
            ActivityKind.IDLE,
        }
    ),
    EntityKind.CRITTER: frozenset(
        {
            ActivityKind.EXPLORE,
            ActivityKind.FORAGE,
            ActivityKind.REST,
            ActivityKind.SOCIALIZE,
            ActivityKind.SEEK_RESOURCE,
            ActivityKind.FLEE,
            ActivityKind.IDLE,
        }
    ),
    EntityKind.WILD_ANIMAL: frozenset(),
}

FRIEND_RADIUS = 15.0
RESOURCE_SEARCH_RADIUS = 50.0
URGENT_DESIRE = 0.4


def is_valid_action(action: ActivityKind, kind: EntityKind) -> bool:
    return action in VALID_ACTIONS.get(kind, frozenset())


def random_duration(activity: ActivityKind, rng: Optional[random.Random] = None) -> float:
    low, high = ACTIVITY_DURATIONS[activity]
    return low + (rng or random).random() * (high - low)


def movement_pattern(activity: ActivityKind) -> MovementPattern:
    return ACTIVITY_PATTERNS[activity]


def _start(
    activity: ActivityKind,
    now: float,
    rng,
    target_entity_id: Optional[str] = None,
) -> ActivityState:
    return ActivityState(
        current=activity,
        started_at=now,
        duration=random_duration(activity, rng),
        target_entity_id=target_entity_id,
    )


def _rule_based(
    emotion: EmotionState,
    time: float,
    weather: Weather,
    relationships: RelationshipMap,
    self_id: str,
    nearby: Sequence[Tuple[str, float]],
    desires: Sequence[Desire],
    now: float,
    rng,
) -> ActivityState:
    night = time < 5 or time > 21

    if desires:
        top = desires[0]
        if top.urgency > URGENT_DESIRE:
            if top.kind in ("eat", "recharge"):
                return _start(ActivityKind.SEEK_RESOURCE, now, rng)
            if top.kind == "rest":
                return _start(ActivityKind.REST, now, rng)

    if night and emotion.energy < 0.4 and rng.random() < 0.85:
        return _start(ActivityKind.REST, now, rng)

    if weather == Weather.RAINY and emotion.fear > 0.3 and rng.random() < 0.5:
        return _start(ActivityKind.FLEE, now, rng)

    friends = [
        other_id
        for other_id, distance in nearby
        if distance < FRIEND_RADIUS and should_approach(get_affinity(relationships, self_id, other_id))
    ]
    if friends and emotion.happiness > 0.3 and emotion.energy > 0.3 and rng.random() < 0.4:
        return _start(ActivityKind.SOCIALIZE, now, rng, target_entity_id=friends[0])

    if not night and emotion.energy > 0.3:
        explore_chance = 0.45 if emotion.curiosity > 0.4 else 0.25
        if rng.random() < explore_chance:
            return _start(ActivityKind.EXPLORE, now, rng)

    if emotion.anger > 0.25 and emotion.energy > 0.3 and rng.random() < 0.25:
        return _start(ActivityKind.PATROL, now, rng)

    if emotion.energy < 0.25 and rng.random() < 0.6:
        return _start(ActivityKind.REST, now, rng)

    roll = rng.random()
    if roll < 0.4:
        return _start(ActivityKind.FORAGE, now, rng)
    if roll < 0.65:
        return _start(ActivityKind.EXPLORE, now, rng)
    return _start(ActivityKind.IDLE, now, rng)


def select_next_activity(
    emotion: EmotionState,
    time: float,
    weather: Weather,
    relationships: RelationshipMap,
    self_id: str,
    nearby: Sequence[Tuple[str, float]],
    desires: Sequence[Desire],
    ai_suggestion: Optional[ActivityKind] = None,
    now: float = 0.0,
    rng: Optional[random.Random] = None,
    resources: Optional[Sequence[ResourceNode]] = None,
    position: Optional[Position] = None,
    kind: EntityKind = EntityKind.CRITTER,
) -> ActivityState:
    """Choose the next activity for an entity.

    A valid AI suggestion for ``kind`` wins outright. Otherwise the ordered
    rules decide. When the result is ``seek_resource`` and ``resources`` and
    ``position`` are given, the nearest matching node within 50 units becomes
    the target (food for critters, energy for the robot).
    """

    source = rng or random

    if ai_suggestion is not None and is_valid_action(ai_suggestion, kind):
        state = _start(ai_suggestion, now, source)
    else:
        state = _rule_based(emotion, time, weather, relationships, self_id, nearby, desires, now, source)

    if state.current == ActivityKind.SEEK_RESOURCE and resources is not None and position is not None:
        wanted = ROBOT_ENERGY_TYPES if kind == EntityKind.ROBOT else CRITTER_FOOD_TYPES
        matches = get_nearby(resources, position.x, position.z, RESOURCE_SEARCH_RADIUS, type_filter=wanted)
        if matches:
            state = state.model_copy(update={"target_resource_id": matches[0][0].id})

    return state


def should_switch_activity(activity: Optional[ActivityState], now: float) -> bool:
    if activity is None:
        return True
    return now - activity.started_at >= activity.duration


__all__ = [
    "MovementPattern",
    "ACTIVITY_PATTERNS",
    "ACTIVITY_DURATIONS",
    "VALID_ACTIONS",
    "is_valid_action",
    "random_duration",
    "movement_pattern",
    "select_next_activity",
    "should_switch_activity",
]
