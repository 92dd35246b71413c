"""
Pydantic schemas for the critterworld simulation.

Every piece of state the simulation owns is described here. Subsystems never
group state into entity objects; instead each slice of the world store maps an
entity id to one of these component models (needs, emotion, lifecycle, ...).

Design Philosophy:
- Enums for every finite state machine (weather, health, activity) so that
  transition functions can be exhaustive
- Numeric fields are clamped by the engines, never rejected
- Runtime-only models (ActiveDialogue, ActivityState) are kept separate from
  the persisted snapshot in persistence.py
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Enumerations
# ============================================================================


class EntityKind(str, Enum):
    """Kinds of simulated entity; each has its own id namespace."""

    ROBOT = "robot"
    CRITTER = "critter"
    WILD_ANIMAL = "wild_animal"


class NeedKind(str, Enum):
    HUNGER = "hunger"
    ENERGY = "energy"
    SOCIAL = "social"
    COMFORT = "comfort"


class Affect(str, Enum):
    HAPPINESS = "happiness"
    CURIOSITY = "curiosity"
    FEAR = "fear"
    ANGER = "anger"
    ENERGY = "energy"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    SICK = "sick"
    DYING = "dying"
    DEAD = "dead"


class Weather(str, Enum):
    SUNNY = "sunny"
    CLOUDY = "cloudy"
    RAINY = "rainy"
    SNOWY = "snowy"


class Season(str, Enum):
    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"
    WINTER = "winter"


class TimeOfDay(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class WeatherEventType(str, Enum):
    STORM = "storm"
    HEATWAVE = "heatwave"
    BLIZZARD = "blizzard"
    DROUGHT = "drought"
    CALM = "calm"


class ShelterType(str, Enum):
    NONE = "none"
    TENT = "tent"
    WOODEN_SHELTER = "wooden_shelter"
    REINFORCED_SHELTER = "reinforced_shelter"


class ActivityKind(str, Enum):
    IDLE = "idle"
    EXPLORE = "explore"
    FORAGE = "forage"
    REST = "rest"
    SOCIALIZE = "socialize"
    FLEE = "flee"
    PATROL = "patrol"
    SEEK_RESOURCE = "seek_resource"


class MemoryType(str, Enum):
    DIALOGUE = "dialogue"
    OBSERVATION = "observation"
    EVENT = "event"
    QUARREL = "quarrel"


class LogCategory(str, Enum):
    THOUGHT = "thought"
    EVENT = "event"
    DIALOGUE = "dialogue"
    COMBAT = "combat"
    DISCOVERY = "discovery"
    DEATH = "death"
    BUILD = "build"
    WARNING = "warning"


class LogImportance(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class ResourceCategory(str, Enum):
    FOOD = "food"
    ENERGY = "energy"
    MATERIAL = "material"
    WATER = "water"


class BuildingType(str, Enum):
    TENT = "tent"
    STORAGE = "storage"
    CHARGING_STATION = "charging_station"
    WOODEN_SHELTER = "wooden_shelter"
    WORKSHOP = "workshop"


# ============================================================================
# Spatial
# ============================================================================


class Position(BaseModel):
    """World position. Proximity checks use the ground plane (x, z)."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def distance_to(self, other: "Position") -> float:
        return math.hypot(self.x - other.x, self.z - other.z)


# ============================================================================
# Per-entity component state
# ============================================================================


class NeedsState(BaseModel):
    """Physiological needs, 1.0 = fully satisfied, 0.0 = desperate."""

    hunger: float = Field(1.0, ge=0.0, le=1.0)
    energy: float = Field(1.0, ge=0.0, le=1.0)
    social: float = Field(1.0, ge=0.0, le=1.0)
    comfort: float = Field(1.0, ge=0.0, le=1.0)


class EmotionState(BaseModel):
    """Affect vector; every component lives in [0, 1]."""

    happiness: float = Field(0.3, ge=0.0, le=1.0)
    curiosity: float = Field(0.5, ge=0.0, le=1.0)
    fear: float = Field(0.1, ge=0.0, le=1.0)
    anger: float = Field(0.0, ge=0.0, le=1.0)
    energy: float = Field(0.7, ge=0.0, le=1.0)


class LifecycleState(BaseModel):
    age: float = 0.0
    max_age: float = 90.0
    health: float = Field(1.0, ge=0.0, le=1.0)
    health_status: HealthStatus = HealthStatus.HEALTHY
    sickness_duration: float = 0.0
    reproduction_cooldown: float = 15.0
    generation: int = 0


class ActivityState(BaseModel):
    current: ActivityKind = ActivityKind.IDLE
    started_at: float = 0.0
    duration: float = 5.0
    target_entity_id: Optional[str] = None
    target_resource_id: Optional[str] = None


class RobotStatus(BaseModel):
    """Robot survival meters; battery/durability are percentages."""

    battery: float = Field(100.0, ge=0.0, le=100.0)
    durability: float = Field(100.0, ge=0.0, le=100.0)
    temperature: float = 20.0
    malfunctioning: bool = False
    overheated: bool = False
    frozen: bool = False
    repair_parts: int = 3


class Desire(BaseModel):
    """A need-derived drive; ``kind`` is eat, recharge, rest or socialize."""

    kind: str
    urgency: float


# ============================================================================
# Memory and communication
# ============================================================================


class Memory(BaseModel):
    content: str
    timestamp: float
    importance: float = Field(0.3, ge=0.0, le=1.0)
    emotional_weight: float = 0.1
    entities: List[str] = Field(default_factory=list)
    type: MemoryType = MemoryType.OBSERVATION


class DialogueRecord(BaseModel):
    id: str
    speaker_id: str
    target_id: str
    text: str
    is_robot: bool = False
    timestamp: float


class ActiveDialogue(BaseModel):
    """Transient speech bubble shown to the rendering layer."""

    speaker_id: str
    target_id: Optional[str] = None
    text: str
    expires_at: float


class IncomingMessage(BaseModel):
    """A line addressed to an entity that it may answer on a later tick."""

    speaker_id: str
    target_id: str
    text: str
    received_at: float
    turn: int = Field(1, ge=1)  # position in the exchange; the opening line is turn 1


class ConversationState(BaseModel):
    """Per-entity counters consulted on the dialogue response path."""

    turn_count: int = 0
    last_turn_at: Optional[float] = None
    last_conversation_end: Optional[float] = None
    quarrel_count: int = 0


class ThoughtResult(BaseModel):
    """Structured output expected from the thought generator."""

    thought: str = Field(..., min_length=1)
    action: ActivityKind
    reason: str = ""
    target_direction: Optional[str] = None


class ThoughtEntry(BaseModel):
    thought: str
    action: ActivityKind
    reason: str = ""
    timestamp: float


class ActivityLogEntry(BaseModel):
    id: str
    timestamp: float
    game_time: str
    category: LogCategory
    importance: LogImportance = LogImportance.NORMAL
    entity_id: Optional[str] = None
    content: str
    related_entities: List[str] = Field(default_factory=list)


# ============================================================================
# World resources, events and structures
# ============================================================================


class ResourceNode(BaseModel):
    id: str
    type: str
    category: ResourceCategory
    name: str = ""
    position: Position
    radius: float = 2.0
    capacity: float = Field(1.0, ge=0.0)
    max_capacity: float = Field(1.0, ge=0.0)
    regen_rate: float = 0.0
    quality: float = 0.5
    danger_level: float = 0.0
    requires_tool: bool = False


class GatherResult(BaseModel):
    success: bool
    amount: float = 0.0
    quality: float = 0.0
    damaged: bool = False
    message: str = ""


class WeatherEffects(BaseModel):
    temperature_change: float = 0.0
    damage_per_second: float = 0.0
    movement_penalty: float = 0.0
    visibility_reduction: float = 0.0
    resource_spawn_block: bool = False


class WeatherWarning(BaseModel):
    message: str
    time_before_start: float


class WeatherEvent(BaseModel):
    type: WeatherEventType
    duration: float
    start_time: float
    effects: WeatherEffects = Field(default_factory=WeatherEffects)
    warning: Optional[WeatherWarning] = None
    warning_issued: bool = False


class BuildingEffects(BaseModel):
    shelter_protection: float = 0.0
    storage_slots: int = 0
    charge_rate: float = 0.0
    repair_rate: float = 0.0
    temperature_control: float = 0.0


class Building(BaseModel):
    id: str
    type: BuildingType
    name: str
    position: Position
    radius: float
    capacity: int
    durability: float = 100.0
    level: int = 1
    effects: BuildingEffects = Field(default_factory=BuildingEffects)
    required_materials: Dict[str, int] = Field(default_factory=dict)
    built: bool = False
    construction_progress: float = 0.0
    construction_time: float = 30.0


class Inventory(BaseModel):
    fiber: int = 0
    scrap_metal: int = 0
    crystal: int = 0
    high_quality_parts: int = 0


# ============================================================================
# World-level records
# ============================================================================


class EnvironmentState(BaseModel):
    time: float = 12.0
    day: int = 1
    season: Season = Season.SPRING
    weather: Weather = Weather.SUNNY
    target_weather: Weather = Weather.SUNNY
    temperature: float = 15.0
    active_event: Optional[WeatherEvent] = None


class RegistryEntry(BaseModel):
    id: str
    name: str
    kind: EntityKind = EntityKind.CRITTER
    color: str = "#ffffff"
    spawn_position: Position = Field(default_factory=Position)
    is_alive: bool = True
    generation: int = 0


class CombatStats(BaseModel):
    wins: int = 0
    catastrophes_survived: int = 0


class TimelineEvent(BaseModel):
    day: int
    time: float
    type: str
    description: str
    importance: float = 0.5


class Achievement(BaseModel):
    id: str
    name: str
    description: str
    rarity: str = "common"
    unlocked_at: float = 0.0


class Settings(BaseModel):
    provider: str = "openai"
    model: Optional[str] = None
    api_key: Optional[str] = None
    robot_system_prompt: str = ""
    critter_system_prompt: str = ""
    tts_enabled: bool = False
    ambient_sound: bool = True


__all__ = [
    "EntityKind",
    "NeedKind",
    "Affect",
    "HealthStatus",
    "Weather",
    "Season",
    "TimeOfDay",
    "WeatherEventType",
    "ShelterType",
    "ActivityKind",
    "MemoryType",
    "LogCategory",
    "LogImportance",
    "ResourceCategory",
    "BuildingType",
    "Position",
    "NeedsState",
    "EmotionState",
    "LifecycleState",
    "ActivityState",
    "RobotStatus",
    "Desire",
    "Memory",
    "DialogueRecord",
    "ActiveDialogue",
    "IncomingMessage",
    "ConversationState",
    "ThoughtResult",
    "ThoughtEntry",
    "ActivityLogEntry",
    "ResourceNode",
    "GatherResult",
    "WeatherEffects",
    "WeatherWarning",
    "WeatherEvent",
    "BuildingEffects",
    "Building",
    "Inventory",
    "EnvironmentState",
    "RegistryEntry",
    "CombatStats",
    "TimelineEvent",
    "Achievement",
    "Settings",
]
