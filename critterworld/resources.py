"""Resource field: spatial nodes that entities deplete and that regrow over time.

Nodes are plain :class:`ResourceNode` records held in a list inside the world
store. Every operation here is a pure transform over that list; the store
swaps in the returned list. A node whose capacity falls below
``DEPLETED_THRESHOLD`` is invisible to proximity queries until it regrows.
"""

from __future__ import annotations

import random
from typing import Iterable, List, Optional, Tuple

from .schemas import GatherResult, Position, ResourceCategory, ResourceNode


DEPLETED_THRESHOLD = 0.05

# Resource types critters can eat
CRITTER_FOOD_TYPES = ("mineral_ore", "glowing_mushroom")
ROBOT_ENERGY_TYPES = ("energy_node", "ancient_battery", "solar_panel")
MATERIAL_TYPES = ("scrap_metal", "fiber", "crystal", "high_quality_parts")


def _node(
    node_id: str,
    node_type: str,
    category: ResourceCategory,
    name: str,
    x: float,
    y: float,
    z: float,
    radius: float,
    regen_rate: float,
    quality: float,
    danger_level: float = 0.0,
    requires_tool: bool = False,
) -> ResourceNode:
    return ResourceNode(
        id=node_id,
        type=node_type,
        category=category,
        name=name,
        position=Position(x=x, y=y, z=z),
        radius=radius,
        capacity=1.0,
        max_capacity=1.0,
        regen_rate=regen_rate,
        quality=quality,
        danger_level=danger_level,
        requires_tool=requires_tool,
    )


def initial_resource_nodes() -> List[ResourceNode]:
    """The starting world: food, energy, materials and water."""

    food = ResourceCategory.FOOD
    energy = ResourceCategory.ENERGY
    material = ResourceCategory.MATERIAL
    water = ResourceCategory.WATER
    return [
        # Mineral ore: critter staple, low quality but safe
        _node("ore-1", "mineral_ore", food, "Mineral ore", -25, 0.3, 15, 3, 0.005, 0.7),
        _node("ore-2", "mineral_ore", food, "Mineral ore", 20, 0.3, -20, 3, 0.005, 0.7),
        _node("ore-3", "mineral_ore", food, "Mineral ore", 30, 0.3, 10, 3, 0.005, 0.7),
        # Glowing mushrooms: nutritious, occasionally poisonous
        _node("mushroom-food-1", "glowing_mushroom", food, "Glowing mushroom", -8, 0, 12, 3, 0.004, 1.2, 0.1),
        _node("mushroom-food-2", "glowing_mushroom", food, "Glowing mushroom", 15, 0, -8, 3, 0.004, 1.2, 0.1),
        _node("berry-1", "berry_bush", food, "Berry bush", 5, 0, 5, 2, 0.01, 1.0),
        _node("berry-2", "berry_bush", food, "Berry bush", -12, 0, -8, 2, 0.01, 1.0),
        _node("veg-1", "vegetation", food, "Meadow", 12, 0, 8, 4, 0.006, 0.8),
        _node("veg-2", "vegetation", food, "Meadow", -15, 0, -12, 4, 0.006, 0.8),
        _node("veg-3", "vegetation", food, "Meadow", -10, 0, 20, 4, 0.006, 0.8),
        _node("energy-1", "energy_node", energy, "Energy node", 8, 0.5, -8, 2.5, 0.008, 1.0),
        _node("energy-2", "energy_node", energy, "Energy node", -5, 0.5, -5, 2.5, 0.008, 1.0),
        # One-shot: never regenerates
        _node("battery-1", "ancient_battery", energy, "Ancient battery", -18, 0.5, 18, 1, 0.0, 2.0, 0.2),
        _node("scrap-1", "scrap_metal", material, "Scrap metal", 22, 0, 5, 2, 0.0, 0.8, 0.1),
        _node("scrap-2", "scrap_metal", material, "Scrap metal", -20, 0, -15, 2, 0.0, 0.8, 0.1),
        _node("fiber-1", "fiber", material, "Fiber", 0, 0, 15, 3, 0.003, 1.0),
        _node("fiber-2", "fiber", material, "Fiber", -8, 0, -18, 3, 0.003, 1.0),
        _node("crystal-1", "crystal", material, "Crystal", 25, 0.8, -25, 1.5, 0.001, 1.5, 0.15, True),
        _node("river-1", "river", water, "River", 0, 0, -10, 5, 0.1, 1.0),
        _node("pond-1", "pond", water, "Pond", 10, 0, 12, 3, 0.05, 0.9),
    ]


def is_available(node: ResourceNode) -> bool:
    return node.capacity >= DEPLETED_THRESHOLD


def get_nearby(
    nodes: Iterable[ResourceNode],
    x: float,
    z: float,
    range_: float,
    type_filter: Optional[Iterable[str]] = None,
    category_filter: Optional[ResourceCategory] = None,
) -> List[Tuple[ResourceNode, float]]:
    """Available nodes whose edge lies within ``range_``, nearest first.

    Returns ``(node, distance)`` pairs measured to the node centre.
    """

    types = set(type_filter) if type_filter is not None else None
    origin = Position(x=x, z=z)
    matches: List[Tuple[ResourceNode, float]] = []
    for node in nodes:
        if not is_available(node):
            continue
        if types is not None and node.type not in types:
            continue
        if category_filter is not None and node.category != category_filter:
            continue
        distance = origin.distance_to(node.position)
        if distance < range_ + node.radius:
            matches.append((node, distance))
    matches.sort(key=lambda pair: pair[1])
    return matches


def consume(nodes: List[ResourceNode], node_id: str, amount: float) -> List[ResourceNode]:
    return [
        node.model_copy(update={"capacity": max(0.0, node.capacity - amount)})
        if node.id == node_id
        else node
        for node in nodes
    ]


def regenerate(nodes: List[ResourceNode], delta_seconds: float) -> List[ResourceNode]:
    dt = max(0.0, delta_seconds)
    regrown: List[ResourceNode] = []
    for node in nodes:
        if node.capacity >= node.max_capacity or node.regen_rate <= 0.0:
            regrown.append(node)
            continue
        capacity = min(node.max_capacity, node.capacity + node.regen_rate * dt)
        regrown.append(node.model_copy(update={"capacity": capacity}))
    return regrown


def resources_by_category(nodes: Iterable[ResourceNode], category: ResourceCategory) -> List[ResourceNode]:
    return [node for node in nodes if node.category == category and node.capacity > DEPLETED_THRESHOLD]


def resource_value(node: ResourceNode, amount: float) -> float:
    """Effective value of ``amount`` units after the node's quality multiplier."""
    return amount * node.quality


def attempt_gather(
    node: ResourceNode,
    has_tool: bool = False,
    rng: Optional[random.Random] = None,
) -> GatherResult:
    """Try to harvest from ``node``.

    The danger roll is independent of the harvested amount: a gatherer can be
    hurt on an otherwise successful attempt.
    """

    if node.requires_tool and not has_tool:
        return GatherResult(success=False, message=f"{node.name} needs a tool")

    rand = (rng or random).random
    damaged = rand() < node.danger_level
    amount = min(node.capacity, 0.1 + rand() * 0.2)
    return GatherResult(success=True, amount=amount, quality=node.quality, damaged=damaged)


def describe_resource(node: ResourceNode) -> str:
    if node.quality > 1.2:
        quality = "high quality"
    elif node.quality < 0.8:
        quality = "low quality"
    else:
        quality = "standard"

    if node.danger_level > 0.2:
        danger = "dangerous"
    elif node.danger_level > 0:
        danger = "somewhat risky"
    else:
        danger = "safe"

    if node.regen_rate > 0.005:
        regen = "regrows"
    elif node.regen_rate > 0:
        regen = "slow to regrow"
    else:
        regen = "finite"

    return f"{node.name} ({quality}, {danger}, {regen})"


__all__ = [
    "DEPLETED_THRESHOLD",
    "CRITTER_FOOD_TYPES",
    "ROBOT_ENERGY_TYPES",
    "MATERIAL_TYPES",
    "initial_resource_nodes",
    "is_available",
    "get_nearby",
    "consume",
    "regenerate",
    "resources_by_category",
    "resource_value",
    "attempt_gather",
    "describe_resource",
]
