"""
Perception module: what an entity can notice around itself.

Entities never read each other's internal state. What they perceive is limited
to geometry and the shared world:

- Other entities within a sensor radius (ids and distances only)
- Fixed world elements (plants, water, landmarks, resources, wildlife haunts)
  within range, some of which only appear at certain hours
- Public environment state (time of day, weather)

Design rationale:
- Proximity scans run against a positions snapshot taken at the start of the
  tick, so every entity in a tick sees the same geometry regardless of the
  order entities are processed in
- Observation text is sampled (at most two elements) so repeated prompts do not
  all describe the same mushroom

Usage:
    nearby = nearby_entities(snapshot, "Critter-A", radius=8.0)
    context = build_env_context(time=14.0, weather=Weather.SUNNY, x=3.0, z=3.0)
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .schemas import Position, Weather


def _is_night(time: float) -> bool:
    return time >= 18 or time < 6


def _is_day(time: float) -> bool:
    return 6 <= time < 18


@dataclass(frozen=True)
class WorldElement:
    id: str
    type: str  # creature, plant, water, landmark, resource
    name: str
    description: str
    x: float
    z: float
    radius: float
    time_condition: Optional[Callable[[float], bool]] = None


WORLD_ELEMENTS: List[WorldElement] = [
    WorldElement("mushroom-1", "plant", "glowing mushrooms", "Glowing mushrooms sprout from the ground", -8, 12, 3),
    WorldElement("mushroom-2", "plant", "glowing mushrooms", "A few purplish mushrooms grow here", 15, -8, 3),
    WorldElement("mushroom-3", "plant", "glowing mushrooms", "Mushrooms hide in the shadow of a rock", -18, -15, 3),
    WorldElement("mushroom-4", "plant", "glowing mushrooms", "Mushrooms grow in a ring", 25, 20, 3),
    WorldElement("mushroom-5", "plant", "glowing mushrooms", "Mushrooms cover the top of a rock", -30, 5, 3),
    WorldElement("flower-cluster-1", "plant", "strange flowers", "Pink and purple flowers are blooming", 5, 10, 4),
    WorldElement("flower-cluster-2", "plant", "strange flowers", "Some orange flowers are blooming", -12, -5, 4),
    WorldElement("flower-cluster-3", "plant", "strange flowers", "One huge flower stands alone", 20, 5, 3),
    WorldElement("river-main", "water", "river", "A small river runs nearby", -5, -5, 8),
    WorldElement("butterflies-1", "creature", "butterflies", "Butterflies flutter about", 5, 10, 6, _is_day),
    WorldElement("fireflies-1", "creature", "fireflies", "Fireflies blink as they drift", -8, 12, 8, _is_night),
    WorldElement("fireflies-2", "creature", "fireflies", "Fireflies hover over the river", -5, -5, 6, _is_night),
    WorldElement("fish-pond-1", "creature", "fish", "There are fish in the pond", 10, 15, 5),
    WorldElement("fish-pond-2", "creature", "fish", "Fish swim around the pond", -20, -10, 6),
    WorldElement("crystal-1", "landmark", "crystal", "A large crystal juts out of the ground", -5, -5, 3),
    WorldElement("crystal-2", "landmark", "crystal", "There is a small crystal", 5, 5, 3),
    WorldElement("monolith-1", "landmark", "monolith", "A black stone pillar stands here", -3, 6, 3),
    WorldElement("datatower-1", "landmark", "data tower", "There is a data tower", 8, -8, 4),
    WorldElement("res-ore-1", "resource", "ore", "Glowing ore is exposed in the ground", -25, 15, 3),
    WorldElement("res-ore-2", "resource", "ore", "There is iron-coloured ore", 20, -20, 3),
    WorldElement("res-ore-3", "resource", "ore", "There is crystalline ore", 30, 10, 3),
    WorldElement("res-energy-1", "resource", "energy node", "A pillar of glowing energy rises here", 8, -8, 3),
    WorldElement("res-energy-2", "resource", "energy node", "Energy wells up from the ground", -5, -5, 3),
    WorldElement("wild-deer", "creature", "deer", "A deer is walking around", -18, 18, 10),
    WorldElement("wild-bird", "creature", "bird", "A bird is flying overhead", 5, 12, 15),
    WorldElement("wild-rabbit", "creature", "rabbit", "A rabbit is hopping about", 10, 5, 8),
]

FALLBACK_THEMES = (
    "the weather",
    "something seen recently",
    "what is going on around here",
    "how hungry everyone is",
    "plans for the day",
)

ENV_CONTEXT_RANGE = 12.0


def nearby_entities(
    positions: Mapping[str, Position],
    self_id: str,
    radius: float,
    limit: Optional[int] = None,
    candidates: Optional[Sequence[str]] = None,
) -> List[Tuple[str, float]]:
    """Return ``(entity_id, distance)`` pairs within ``radius``, nearest first.

    Args:
        positions: Read-only positions snapshot for this tick
        self_id: Entity doing the looking (excluded from results)
        radius: Sensor radius on the ground plane
        limit: Optional cap on the number of results
        candidates: Restrict the scan to these ids (e.g. living entities)
    """

    origin = positions.get(self_id)
    if origin is None:
        return []

    pool = candidates if candidates is not None else list(positions)
    found: List[Tuple[str, float]] = []
    for other_id in pool:
        if other_id == self_id:
            continue
        other = positions.get(other_id)
        if other is None:
            continue
        distance = origin.distance_to(other)
        if distance <= radius:
            found.append((other_id, distance))

    found.sort(key=lambda item: item[1])
    return found[:limit] if limit is not None else found


def get_nearby_elements(x: float, z: float, range_: float, time: float) -> List[WorldElement]:
    elements: List[WorldElement] = []
    for element in WORLD_ELEMENTS:
        distance = ((element.x - x) ** 2 + (element.z - z) ** 2) ** 0.5
        if distance > range_ + element.radius:
            continue
        if element.time_condition is not None and not element.time_condition(time):
            continue
        elements.append(element)
    return elements


def observation_context(elements: Sequence[WorldElement], rng: Optional[random.Random] = None) -> str:
    """Describe up to two randomly chosen elements."""
    if not elements:
        return ""
    picked = (rng or random).sample(list(elements), min(2, len(elements)))
    return ". ".join(element.description for element in picked)


def theme_from_elements(elements: Sequence[WorldElement], rng: Optional[random.Random] = None) -> str:
    """Pick a conversation theme from what is nearby."""
    source = rng or random
    if not elements:
        return source.choice(FALLBACK_THEMES)
    element = source.choice(list(elements))
    if element.type == "plant":
        return f"the {element.name} growing there"
    if element.type == "creature":
        return f"the {element.name} nearby"
    return f"the {element.name}"


def build_env_context(
    time: float,
    weather: Weather,
    x: float,
    z: float,
    rng: Optional[random.Random] = None,
) -> str:
    base = f"Time: {int(time)}:00, weather: {weather.value}"
    nearby = get_nearby_elements(x, z, ENV_CONTEXT_RANGE, time)
    if not nearby:
        return base
    return f"{base}. Around: {observation_context(nearby, rng)}"


def positions_snapshot(positions: Mapping[str, Position]) -> Dict[str, Position]:
    return {entity_id: position.model_copy() for entity_id, position in positions.items()}


__all__ = [
    "WorldElement",
    "WORLD_ELEMENTS",
    "nearby_entities",
    "get_nearby_elements",
    "observation_context",
    "theme_from_elements",
    "build_env_context",
    "positions_snapshot",
]
