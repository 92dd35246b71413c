"""
Critterworld - autonomous-agent life simulation and world-state engine.

A robot, a handful of critters and some wild animals share a small world with
a day clock, weather, hazards, resources and buildings. Needs, emotions,
relationships and lifecycles are calculated every frame; dialogue and inner
thoughts are generated by an LLM in the background and folded back into the
world through state patches.

Library only: the host owns rendering, movement and the frame loop.
All dependencies are injected; nothing reads global state implicitly.
"""

__version__ = "0.1.0"

# Main simulation components
from .simulation import Simulation, TickResult
from .simulation_rules import SimulationRules, CritterWorldRules
from .store import WorldStateStore, StatePatch, ROBOT_ID

# Subsystems
from .environment.cycle import EnvironmentCycle
from .dialogue import DialogueOrchestrator
from .thinking import ThinkingLoop
from .memory import MemoryStore
from .speech import SpeechQueue, SpeechBackend, NullSpeechBackend
from .relationships import AffinityDecayPolicy, StickyAffinityPolicy, DecayingAffinityPolicy
from .cadence import Cadence, CadenceClock

# Persistence
from .persistence import (
    PersistenceStrategy,
    InMemoryPersistence,
    JsonPersistence,
    PostgresPersistence,
    PersistedWorld,
    UnsupportedSchemaVersionError,
    CorruptWorldStateError,
    migrate_blob,
    load_world,
    save_store,
    load_store,
)

# Scoring
from .scoring import RealtimeScore, calculate_realtime_score, check_achievements, update_achievements

# Core schemas
from .schemas import (
    EntityKind,
    ActivityKind,
    Weather,
    Season,
    HealthStatus,
    MemoryType,
    BuildingType,
    Position,
    NeedsState,
    EmotionState,
    LifecycleState,
    RobotStatus,
    Memory,
    ResourceNode,
    Building,
    Inventory,
    ThoughtResult,
    Settings,
)

# LLM layer
from .llm_calls import MissingAPIKeyError, generate_text, stream_text, generate_thought
from .local_llm import LocalLLMError

from .config import Config

__all__ = [
    "Simulation",
    "TickResult",
    "SimulationRules",
    "CritterWorldRules",
    "WorldStateStore",
    "StatePatch",
    "ROBOT_ID",
    "EnvironmentCycle",
    "DialogueOrchestrator",
    "ThinkingLoop",
    "MemoryStore",
    "SpeechQueue",
    "SpeechBackend",
    "NullSpeechBackend",
    "AffinityDecayPolicy",
    "StickyAffinityPolicy",
    "DecayingAffinityPolicy",
    "Cadence",
    "CadenceClock",
    "PersistenceStrategy",
    "InMemoryPersistence",
    "JsonPersistence",
    "PostgresPersistence",
    "PersistedWorld",
    "UnsupportedSchemaVersionError",
    "CorruptWorldStateError",
    "migrate_blob",
    "load_world",
    "save_store",
    "load_store",
    "RealtimeScore",
    "calculate_realtime_score",
    "check_achievements",
    "update_achievements",
    "EntityKind",
    "ActivityKind",
    "Weather",
    "Season",
    "HealthStatus",
    "MemoryType",
    "BuildingType",
    "Position",
    "NeedsState",
    "EmotionState",
    "LifecycleState",
    "RobotStatus",
    "Memory",
    "ResourceNode",
    "Building",
    "Inventory",
    "ThoughtResult",
    "Settings",
    "MissingAPIKeyError",
    "generate_text",
    "stream_text",
    "generate_thought",
    "LocalLLMError",
    "Config",
]
