"""Buildings: templates, material costs, construction, and area effects.

A building protects whoever stands inside its radius once it is built and has
durability left. Effects do not stack; ``building_effect`` reports the best
value among the functional buildings covering a position.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .schemas import Building, BuildingEffects, BuildingType, Inventory, Position


_TEMPLATES: Dict[BuildingType, dict] = {
    BuildingType.TENT: dict(
        name="Simple tent",
        radius=3.0,
        capacity=2,
        level=1,
        effects=BuildingEffects(shelter_protection=0.6, temperature_control=0.5),
        required_materials={"fiber": 5},
        construction_time=30.0,
    ),
    BuildingType.STORAGE: dict(
        name="Storage shed",
        radius=2.0,
        capacity=1,
        level=1,
        effects=BuildingEffects(storage_slots=100),
        required_materials={"fiber": 5, "scrap_metal": 5},
        construction_time=60.0,
    ),
    BuildingType.CHARGING_STATION: dict(
        name="Charging station",
        radius=2.0,
        capacity=1,
        level=1,
        effects=BuildingEffects(charge_rate=0.3),
        required_materials={"scrap_metal": 15, "crystal": 3},
        construction_time=90.0,
    ),
    BuildingType.WOODEN_SHELTER: dict(
        name="Wooden shelter",
        radius=5.0,
        capacity=4,
        level=2,
        effects=BuildingEffects(shelter_protection=0.8, temperature_control=0.7, storage_slots=50),
        required_materials={"fiber": 15, "scrap_metal": 10},
        construction_time=180.0,
    ),
    BuildingType.WORKSHOP: dict(
        name="Workshop",
        radius=4.0,
        capacity=2,
        level=2,
        effects=BuildingEffects(repair_rate=0.1, shelter_protection=0.5),
        required_materials={"scrap_metal": 20, "fiber": 10, "crystal": 2},
        construction_time=150.0,
    ),
}

MAX_WORKER_SPEEDUP = 3.0


def create_building(building_type: BuildingType, position: Position, building_id: str) -> Building:
    template = _TEMPLATES[building_type]
    return Building(
        id=building_id,
        type=building_type,
        name=template["name"],
        position=position,
        radius=template["radius"],
        capacity=template["capacity"],
        level=template["level"],
        effects=template["effects"].model_copy(),
        required_materials=dict(template["required_materials"]),
        construction_time=template["construction_time"],
        built=False,
        construction_progress=0.0,
    )


def required_materials(building_type: BuildingType) -> Dict[str, int]:
    return dict(_TEMPLATES[building_type]["required_materials"])


def has_required_materials(building_type: BuildingType, inventory: Inventory) -> bool:
    stock = inventory.model_dump()
    return all(stock.get(material, 0) >= amount for material, amount in required_materials(building_type).items())


def consume_materials(building_type: BuildingType, inventory: Inventory) -> Optional[Inventory]:
    """Deduct the building cost, or return ``None`` when stock is insufficient."""
    if not has_required_materials(building_type, inventory):
        return None
    stock = inventory.model_dump()
    for material, amount in required_materials(building_type).items():
        stock[material] -= amount
    return Inventory(**stock)


def update_construction(building: Building, delta_seconds: float, workers: int = 1) -> Building:
    """Advance construction; extra workers speed it up, capped at 3x."""

    if building.built:
        return building
    speed = min(MAX_WORKER_SPEEDUP, 1.0 + (max(1, workers) - 1) * 0.5)
    progress = min(1.0, building.construction_progress + (max(0.0, delta_seconds) / building.construction_time) * speed)
    return building.model_copy(update={"construction_progress": progress, "built": progress >= 1.0})


def is_functional(building: Building) -> bool:
    return building.built and building.durability > 0


def contains(building: Building, position: Position) -> bool:
    return building.built and building.position.distance_to(position) <= building.radius


def damage_building(building: Building, amount: float) -> Building:
    return building.model_copy(update={"durability": max(0.0, building.durability - max(0.0, amount))})


def repair_building(
    building: Building,
    amount: float,
    scrap_cost: int,
    inventory: Inventory,
) -> Optional[tuple[Building, Inventory]]:
    if building.durability >= 100 or inventory.scrap_metal < scrap_cost:
        return None
    repaired = building.model_copy(update={"durability": min(100.0, building.durability + amount)})
    remaining = inventory.model_copy(update={"scrap_metal": inventory.scrap_metal - scrap_cost})
    return repaired, remaining


def building_effect(buildings: Iterable[Building], position: Position, effect: str) -> float:
    best = 0.0
    for building in buildings:
        if not is_functional(building) or not contains(building, position):
            continue
        value = getattr(building.effects, effect)
        if value > best:
            best = value
    return best


def available_building_types(inventory: Inventory) -> List[BuildingType]:
    return [btype for btype in _TEMPLATES if has_required_materials(btype, inventory)]


def describe_building(building: Building) -> str:
    effects = building.effects
    parts: List[str] = []
    if effects.shelter_protection:
        parts.append(f"protection {effects.shelter_protection * 100:.0f}%")
    if effects.storage_slots:
        parts.append(f"storage {effects.storage_slots} slots")
    if effects.charge_rate:
        parts.append(f"charge {effects.charge_rate * 100:.0f}%/s")
    if effects.temperature_control:
        parts.append(f"climate {effects.temperature_control * 100:.0f}%")
    materials = ", ".join(f"{name} x{amount}" for name, amount in building.required_materials.items())
    return f"{building.name} [{', '.join(parts)}] needs: {materials}"


__all__ = [
    "create_building",
    "required_materials",
    "has_required_materials",
    "consume_materials",
    "update_construction",
    "is_functional",
    "contains",
    "damage_building",
    "repair_building",
    "building_effect",
    "available_building_types",
    "describe_building",
]
