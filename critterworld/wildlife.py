"""Wild animal species catalogue and behaviour.

Wild animals share the needs/emotion shards with other entities but never
converse. Their ids use the ``<species>-<n>`` namespace.

Each animal runs a small state machine, re-evaluated every tick:

* prey species (deer, bird, rabbit) flee from anything inside their flee
  distance, and from wolves at one and a half times that distance;
* wolves chase the nearest critter, rabbit or deer inside their chase
  distance and attack it once in range, at most every two seconds;
* otherwise an animal idles, rests, or wanders around its home spot.

``decide_wild_behavior`` picks the state and ``move_wild_animal`` walks the
animal toward its target. Both are pure: the rules apply the results.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .schemas import Position


@dataclass(frozen=True)
class WildAnimalSpec:
    species: str
    name: str
    flee_distance: float
    wander_radius: float
    speed: float
    color: str
    aggressive: bool = False
    chase_distance: float = 0.0
    attack_range: float = 0.0
    attack_damage: float = 0.0
    flight_height: Optional[Tuple[float, float]] = None


WILD_ANIMALS: Dict[str, WildAnimalSpec] = {
    "deer": WildAnimalSpec("deer", "Deer", flee_distance=10, wander_radius=20, speed=2.5, color="#8b6914"),
    "bird": WildAnimalSpec(
        "bird", "Bird", flee_distance=8, wander_radius=30, speed=3.0, color="#708090", flight_height=(3.0, 8.0)
    ),
    "rabbit": WildAnimalSpec("rabbit", "Rabbit", flee_distance=7, wander_radius=12, speed=3.5, color="#d2b48c"),
    "wolf": WildAnimalSpec(
        "wolf",
        "Wolf",
        flee_distance=0,
        wander_radius=25,
        speed=3.0,
        color="#6b6b6b",
        aggressive=True,
        chase_distance=20,
        attack_range=2.0,
        attack_damage=0.15,
    ),
}

# (species, spawn position); the wolf starts in a far corner
DEFAULT_HERD: List[Tuple[str, Position]] = [
    ("deer", Position(x=-18, z=18)),
    ("bird", Position(x=5, y=4, z=12)),
    ("rabbit", Position(x=10, z=5)),
    ("wolf", Position(x=35, y=0.5, z=-35)),
]

PREY_PREFIXES = ("Critter-", "rabbit-", "deer-")
WOLF_ALARM_FACTOR = 1.5
FLEE_RUN = 15.0
PURSUIT_SPEED_FACTOR = 1.5
ATTACK_INTERVAL = 2.0
ARRIVAL_DISTANCE = 1.0
CLIMB_FACTOR = 0.3


class WildBehavior(str, Enum):
    IDLE = "idle"
    WANDER = "wander"
    REST = "rest"
    FLEE = "flee"
    CHASE = "chase"
    ATTACK = "attack"


@dataclass(frozen=True)
class WildAnimalMind:
    """Runtime behaviour state of one wild animal."""

    home: Position
    behavior: WildBehavior = WildBehavior.IDLE
    target: Optional[Position] = None
    prey_id: Optional[str] = None
    next_decision: float = 0.0
    last_attack_at: Optional[float] = None


def species_of(entity_id: str) -> Optional[str]:
    species = entity_id.rsplit("-", 1)[0]
    return species if species in WILD_ANIMALS else None


def wild_animal_id(species: str, index: int) -> str:
    return f"{species}-{index}"


def find_prey(
    animal_id: str,
    origin: Position,
    positions: Dict[str, Position],
    chase_distance: float,
) -> Optional[Tuple[str, float]]:
    """Nearest critter, rabbit or deer inside ``chase_distance``."""

    best: Optional[Tuple[str, float]] = None
    for other_id, position in positions.items():
        if other_id == animal_id or not other_id.startswith(PREY_PREFIXES):
            continue
        distance = origin.distance_to(position)
        if distance < chase_distance and (best is None or distance < best[1]):
            best = (other_id, distance)
    return best


def find_threat(
    animal_id: str,
    origin: Position,
    positions: Dict[str, Position],
    flee_distance: float,
) -> Optional[Position]:
    nearest: Optional[Position] = None
    nearest_distance = math.inf
    for other_id, position in positions.items():
        if other_id == animal_id:
            continue
        reach = flee_distance * WOLF_ALARM_FACTOR if species_of(other_id) == "wolf" else flee_distance
        distance = origin.distance_to(position)
        if distance < reach and distance < nearest_distance:
            nearest, nearest_distance = position, distance
    return nearest


def _routine(
    mind: WildAnimalMind,
    profile: WildAnimalSpec,
    now: float,
    rand,
) -> WildAnimalMind:
    mind = replace(mind, prey_id=None)
    if mind.behavior in (WildBehavior.FLEE, WildBehavior.CHASE, WildBehavior.ATTACK):
        mind = replace(mind, behavior=WildBehavior.IDLE)
    if now <= mind.next_decision:
        return mind

    roll = rand()
    if roll < 0.3:
        return replace(mind, behavior=WildBehavior.IDLE, target=None, next_decision=now + 3 + rand() * 5)
    if roll < 0.7:
        radius = profile.wander_radius
        if profile.flight_height is not None:
            low, high = profile.flight_height
            height = low + rand() * (high - low)
        else:
            height = mind.home.y
        target = Position(
            x=mind.home.x + (rand() - 0.5) * radius * 2,
            y=height,
            z=mind.home.z + (rand() - 0.5) * radius * 2,
        )
        return replace(mind, behavior=WildBehavior.WANDER, target=target, next_decision=now + 5 + rand() * 8)
    return replace(mind, behavior=WildBehavior.REST, target=None, next_decision=now + 8 + rand() * 12)


def decide_wild_behavior(
    mind: WildAnimalMind,
    profile: WildAnimalSpec,
    animal_id: str,
    origin: Position,
    positions: Dict[str, Position],
    now: float,
    rng: Optional[random.Random] = None,
) -> Tuple[WildAnimalMind, Optional[str]]:
    """Pick the next behaviour; returns the mind and the critter struck, if any."""

    rand = (rng or random).random

    if profile.aggressive:
        prey = find_prey(animal_id, origin, positions, profile.chase_distance)
        if prey is None:
            return _routine(mind, profile, now, rand), None
        prey_id, distance = prey
        if distance >= profile.attack_range:
            target = positions[prey_id].model_copy(update={"y": origin.y})
            return replace(mind, behavior=WildBehavior.CHASE, prey_id=prey_id, target=target), None

        mind = replace(mind, behavior=WildBehavior.ATTACK, prey_id=prey_id, target=None)
        if mind.last_attack_at is not None and now - mind.last_attack_at <= ATTACK_INTERVAL:
            return mind, None
        mind = replace(mind, last_attack_at=now)
        return mind, prey_id if prey_id.startswith("Critter-") else None

    threat = find_threat(animal_id, origin, positions, profile.flee_distance)
    if threat is None:
        return _routine(mind, profile, now, rand), None

    dx, dz = origin.x - threat.x, origin.z - threat.z
    length = math.hypot(dx, dz) or 1.0
    height = profile.flight_height[1] if profile.flight_height is not None else origin.y
    target = Position(x=origin.x + dx / length * FLEE_RUN, y=height, z=origin.z + dz / length * FLEE_RUN)
    return replace(mind, behavior=WildBehavior.FLEE, target=target, prey_id=None), None


def move_wild_animal(
    mind: WildAnimalMind,
    profile: WildAnimalSpec,
    origin: Position,
    dt: float,
    now: float,
    rng: Optional[random.Random] = None,
) -> Tuple[WildAnimalMind, Position]:
    """Walk toward the current target; arriving (except mid-chase) means idling."""

    if mind.target is None or mind.behavior in (WildBehavior.IDLE, WildBehavior.REST, WildBehavior.ATTACK):
        return mind, origin

    target = mind.target
    distance = origin.distance_to(target)
    if distance < ARRIVAL_DISTANCE and mind.behavior != WildBehavior.CHASE:
        rand = (rng or random).random
        return replace(mind, behavior=WildBehavior.IDLE, target=None, next_decision=now + 2 + rand() * 3), origin
    if distance == 0.0:
        return mind, origin

    speed = profile.speed
    if mind.behavior in (WildBehavior.FLEE, WildBehavior.CHASE):
        speed *= PURSUIT_SPEED_FACTOR
    travel = min(speed * dt, distance)
    climb = speed * CLIMB_FACTOR * dt
    moved = Position(
        x=origin.x + (target.x - origin.x) / distance * travel,
        y=origin.y + max(-climb, min(climb, target.y - origin.y)),
        z=origin.z + (target.z - origin.z) / distance * travel,
    )
    return mind, moved


__all__ = [
    "WildAnimalSpec",
    "WildAnimalMind",
    "WildBehavior",
    "WILD_ANIMALS",
    "DEFAULT_HERD",
    "ATTACK_INTERVAL",
    "species_of",
    "wild_animal_id",
    "find_prey",
    "find_threat",
    "decide_wild_behavior",
    "move_wild_animal",
]
