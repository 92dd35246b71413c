"""
World state store: the single aggregate every subsystem reads and writes.

The store is an explicit object passed by handle. It is never a module global,
so tests can build as many independent worlds as they like.

State is sharded into per-id maps (needs, emotions, lifecycles, positions, ...)
rather than grouped into entity objects. Subsystems touch only the slices they
own, through named mutators.

Async work (dialogue and thought generation) never writes to the store
directly. A completed task posts a ``StatePatch``; ``Simulation.tick`` applies
all pending patches at the start of the next tick, so every write happens on
the single simulation thread in a well-defined order.

Usage:
    store = WorldStateStore.with_default_population(now=0.0)
    store.post_patch(StatePatch("bubble", lambda s: s.show_dialogue("robot", "hi", None, 5.0)))
    store.apply_pending_patches()
"""

from __future__ import annotations

import copy
import random
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Iterable, List, Optional, Set

from .config import Config
from .emotions import initial_emotion, personality_index_for
from .environment.weather import format_game_time
from .lifecycle import create_lifecycle
from .memory import MemoryStore
from .needs import default_needs
from .relationships import RelationshipMap, adjust_affinity, pair_key
from .resources import initial_resource_nodes
from .schemas import (
    Achievement,
    ActiveDialogue,
    ActivityKind,
    ActivityLogEntry,
    ActivityState,
    Building,
    CombatStats,
    ConversationState,
    DialogueRecord,
    EmotionState,
    EntityKind,
    EnvironmentState,
    HealthStatus,
    IncomingMessage,
    Inventory,
    LifecycleState,
    LogCategory,
    LogImportance,
    Memory,
    NeedsState,
    Position,
    RegistryEntry,
    ResourceNode,
    RobotStatus,
    Settings,
    ThoughtEntry,
    TimelineEvent,
)
from .wildlife import DEFAULT_HERD, WILD_ANIMALS, species_of, wild_animal_id


ROBOT_ID = "robot"

ACTIVITY_LOG_CAP = 100
ROBOT_THOUGHTS_CAP = 50
CRITTER_THOUGHTS_CAP = 30
CONVERSATION_HISTORY_CAP = 12
DIALOGUE_RECORDS_CAP = 50

# (name, colour, spawn position)
DEFAULT_CRITTERS = [
    ("Critter-A", "#ff6b6b", Position(x=3, y=0.5, z=3)),
    ("Critter-B", "#4ecdc4", Position(x=-4, y=0.5, z=2)),
    ("Critter-C", "#ffe66d", Position(x=0, y=0.5, z=-5)),
    ("Critter-D", "#a78bfa", Position(x=6, y=0.5, z=-3)),
    ("Critter-E", "#f97316", Position(x=-6, y=0.5, z=-4)),
]


@dataclass
class StatePatch:
    """A deferred store mutation posted by an async completion."""

    description: str
    apply: Callable[["WorldStateStore"], None]


def _append_capped(items: List, item, cap: int) -> List:
    items.append(item)
    if len(items) > cap:
        del items[: len(items) - cap]
    return items


class WorldStateStore:
    """Aggregate world state with named slices and mutators.

    Persisted slices round-trip through ``persistence.PersistedWorld``; the
    runtime-only slices (positions, activities, bubbles, flags, intents,
    camera target) reset on load.
    """

    def __init__(self, max_memories: Optional[int] = None, population_cap: Optional[int] = None) -> None:
        self.clock: float = 0.0
        self.population_cap = Config.MAX_CRITTERS if population_cap is None else population_cap

        # Persisted slices
        self.settings = Settings()
        self.environment = EnvironmentState()
        self.needs: Dict[str, NeedsState] = {}
        self.emotions: Dict[str, EmotionState] = {}
        self.lifecycles: Dict[str, LifecycleState] = {}
        self.memories = MemoryStore(max_per_entity=Config.MAX_MEMORIES if max_memories is None else max_memories)
        self.relationships: RelationshipMap = {}
        self.registry: Dict[str, RegistryEntry] = {}
        self.resources: List[ResourceNode] = []
        self.robot_status = RobotStatus()
        self.buildings: List[Building] = []
        self.inventory = Inventory()
        self.activity_log: List[ActivityLogEntry] = []
        self.robot_thoughts: List[ThoughtEntry] = []
        self.critter_thoughts: Dict[str, List[ThoughtEntry]] = {}
        self.conversation_histories: Dict[str, List[DialogueRecord]] = {}
        self.combat_stats = CombatStats()
        self.timeline: List[TimelineEvent] = []
        self.achievements: List[Achievement] = []
        self.user_directive: Optional[str] = None

        # Runtime-only slices
        self.positions: Dict[str, Position] = {}
        self.activities: Dict[str, ActivityState] = {}
        self.dialogue_records: List[DialogueRecord] = []
        self.active_dialogues: Dict[str, ActiveDialogue] = {}
        self.active_thoughts: Dict[str, ActiveDialogue] = {}
        self.busy: bool = False
        self.busy_release_at: Optional[float] = None
        self.in_dialogue: Dict[str, float] = {}
        self.thinking: Set[str] = set()
        self.ai_intents: Dict[str, ActivityKind] = {}
        self.incoming_messages: Dict[str, List[IncomingMessage]] = {}
        self.conversation_state: Dict[str, ConversationState] = {}
        self.spawned_at: Dict[str, float] = {}
        self.observed_elements: Dict[str, Set[str]] = {}
        self.camera_target: Optional[str] = None

        self._pending: Deque[StatePatch] = deque()
        self._log_counter = 0
        self._dialogue_counter = 0

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def with_default_population(
        cls,
        now: float = 0.0,
        rng: Optional[random.Random] = None,
        **kwargs,
    ) -> "WorldStateStore":
        """Robot, critters A-E and the default wild animals, plus the resource field."""

        store = cls(**kwargs)
        store.clock = now
        store.populate_defaults(now=now, rng=rng)
        return store

    def populate_defaults(self, now: float = 0.0, rng: Optional[random.Random] = None) -> None:
        self.resources = initial_resource_nodes()
        self.add_robot(now=now)
        for name, color, position in DEFAULT_CRITTERS:
            self.add_critter(name, color, position, now=now, rng=rng)
        counts: Dict[str, int] = {}
        for species, position in DEFAULT_HERD:
            counts[species] = counts.get(species, 0) + 1
            self.add_wild_animal(wild_animal_id(species, counts[species]), position, now=now)

    def add_robot(self, now: float = 0.0, position: Optional[Position] = None) -> None:
        spawn = position or Position(x=0, y=0.5, z=0)
        self.registry[ROBOT_ID] = RegistryEntry(
            id=ROBOT_ID, name="Robot", kind=EntityKind.ROBOT, color="#00e5ff", spawn_position=spawn
        )
        self.needs[ROBOT_ID] = default_needs(EntityKind.ROBOT)
        self.emotions[ROBOT_ID] = initial_emotion()
        self.positions[ROBOT_ID] = spawn.model_copy()
        self.spawned_at[ROBOT_ID] = now

    def add_critter(
        self,
        entity_id: str,
        color: str,
        position: Position,
        generation: int = 0,
        now: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ) -> bool:
        """Register a critter and create its shards.

        Returns ``False`` (and changes nothing) when the population cap is
        reached or the id is already alive.
        """

        existing = self.registry.get(entity_id)
        if existing is not None and existing.is_alive:
            return False
        if self.alive_count(EntityKind.CRITTER) >= self.population_cap:
            return False

        self.registry[entity_id] = RegistryEntry(
            id=entity_id,
            name=entity_id,
            kind=EntityKind.CRITTER,
            color=color,
            spawn_position=position.model_copy(),
            is_alive=True,
            generation=generation,
        )
        self.needs[entity_id] = default_needs(EntityKind.CRITTER)
        self.emotions[entity_id] = initial_emotion(personality_index_for(entity_id.split("-", 1)[-1]))
        self.lifecycles[entity_id] = create_lifecycle(generation, rng)
        self.positions[entity_id] = position.model_copy()
        self.spawned_at[entity_id] = self.clock if now is None else now
        return True

    def add_wild_animal(self, entity_id: str, position: Position, now: float = 0.0) -> None:
        species = species_of(entity_id)
        profile = WILD_ANIMALS[species] if species is not None else None
        self.registry[entity_id] = RegistryEntry(
            id=entity_id,
            name=profile.name if profile is not None else entity_id,
            kind=EntityKind.WILD_ANIMAL,
            color=profile.color if profile is not None else "#ffffff",
            spawn_position=position.model_copy(),
        )
        self.needs[entity_id] = default_needs(EntityKind.WILD_ANIMAL)
        self.emotions[entity_id] = initial_emotion()
        self.positions[entity_id] = position.model_copy()
        self.spawned_at[entity_id] = now

    def remove_critter(self, entity_id: str) -> None:
        """Mark the registry entry dead and drop the live shards.

        Memories, relationships and the registry record survive so the dead
        are still remembered.
        """

        entry = self.registry.get(entity_id)
        if entry is not None:
            self.registry[entity_id] = entry.model_copy(update={"is_alive": False})
        lifecycle = self.lifecycles.get(entity_id)
        if lifecycle is not None:
            self.lifecycles[entity_id] = lifecycle.model_copy(
                update={"health": 0.0, "health_status": HealthStatus.DEAD}
            )
        for shard in (self.positions, self.activities, self.active_dialogues, self.active_thoughts, self.in_dialogue,
                      self.ai_intents, self.incoming_messages, self.conversation_state, self.spawned_at,
                      self.observed_elements):
            shard.pop(entity_id, None)
        self.thinking.discard(entity_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def kind_of(self, entity_id: str) -> Optional[EntityKind]:
        entry = self.registry.get(entity_id)
        return entry.kind if entry is not None else None

    def is_alive(self, entity_id: str) -> bool:
        entry = self.registry.get(entity_id)
        return entry is not None and entry.is_alive

    def living_entity_ids(self, kind: Optional[EntityKind] = None) -> List[str]:
        return [
            entity_id
            for entity_id, entry in self.registry.items()
            if entry.is_alive and (kind is None or entry.kind == kind)
        ]

    def alive_count(self, kind: EntityKind = EntityKind.CRITTER) -> int:
        return len(self.living_entity_ids(kind))

    def display_name(self, entity_id: str) -> str:
        entry = self.registry.get(entity_id)
        return entry.name if entry is not None else entity_id

    def game_time(self) -> str:
        return format_game_time(self.environment.time, self.environment.day)

    # ------------------------------------------------------------------
    # Per-entity slices
    # ------------------------------------------------------------------

    def set_needs(self, entity_id: str, state: NeedsState) -> None:
        self.needs[entity_id] = state

    def set_emotion(self, entity_id: str, state: EmotionState) -> None:
        self.emotions[entity_id] = state

    def set_lifecycle(self, entity_id: str, state: LifecycleState) -> None:
        self.lifecycles[entity_id] = state

    def set_activity(self, entity_id: str, state: ActivityState) -> None:
        self.activities[entity_id] = state

    def set_position(self, entity_id: str, position: Position) -> None:
        self.positions[entity_id] = position

    def add_memory(self, entity_id: str, memory: Memory) -> None:
        self.memories.add(entity_id, memory)

    def adjust_relationship(self, a: str, b: str, delta: float) -> float:
        self.relationships = adjust_affinity(self.relationships, a, b, delta)
        return self.relationships.get(pair_key(a, b), 0.0)

    # ------------------------------------------------------------------
    # World slices
    # ------------------------------------------------------------------

    def update_environment(self, **changes) -> EnvironmentState:
        self.environment = self.environment.model_copy(update=changes)
        return self.environment

    def set_resources(self, nodes: Iterable[ResourceNode]) -> None:
        self.resources = list(nodes)

    def set_robot_status(self, status: RobotStatus) -> None:
        self.robot_status = status

    def add_building(self, building: Building) -> None:
        self.buildings.append(building)

    def replace_building(self, building: Building) -> None:
        self.buildings = [building if b.id == building.id else b for b in self.buildings]

    def set_inventory(self, inventory: Inventory) -> None:
        self.inventory = inventory

    def add_inventory_item(self, item: str, amount: int) -> None:
        current = getattr(self.inventory, item)
        self.inventory = self.inventory.model_copy(update={item: current + max(0, amount)})

    def remove_inventory_item(self, item: str, amount: int) -> bool:
        """Take ``amount`` of ``item``; ``False`` (nothing removed) if stock is short."""
        current = getattr(self.inventory, item)
        if current < amount:
            return False
        self.inventory = self.inventory.model_copy(update={item: current - amount})
        return True

    def update_settings(self, **changes) -> Settings:
        self.settings = self.settings.model_copy(update=changes)
        return self.settings

    # ------------------------------------------------------------------
    # Logs and histories
    # ------------------------------------------------------------------

    def log_activity(
        self,
        category: LogCategory,
        content: str,
        entity_id: Optional[str] = None,
        importance: LogImportance = LogImportance.NORMAL,
        related_entities: Iterable[str] = (),
    ) -> ActivityLogEntry:
        self._log_counter += 1
        entry = ActivityLogEntry(
            id=f"log-{self._log_counter}",
            timestamp=self.clock,
            game_time=self.game_time(),
            category=category,
            importance=importance,
            entity_id=entity_id,
            content=content,
            related_entities=list(related_entities),
        )
        _append_capped(self.activity_log, entry, ACTIVITY_LOG_CAP)
        return entry

    def add_thought(self, entity_id: str, entry: ThoughtEntry) -> None:
        if entity_id == ROBOT_ID:
            _append_capped(self.robot_thoughts, entry, ROBOT_THOUGHTS_CAP)
        else:
            _append_capped(self.critter_thoughts.setdefault(entity_id, []), entry, CRITTER_THOUGHTS_CAP)

    def recent_thoughts(self, entity_id: str, limit: int = 3) -> List[ThoughtEntry]:
        source = self.robot_thoughts if entity_id == ROBOT_ID else self.critter_thoughts.get(entity_id, [])
        return list(source[-limit:])

    def add_dialogue(self, speaker_id: str, target_id: str, text: str) -> DialogueRecord:
        self._dialogue_counter += 1
        record = DialogueRecord(
            id=f"dlg-{self._dialogue_counter}",
            speaker_id=speaker_id,
            target_id=target_id,
            text=text,
            is_robot=speaker_id == ROBOT_ID,
            timestamp=self.clock,
        )
        _append_capped(self.dialogue_records, record, DIALOGUE_RECORDS_CAP)
        history = self.conversation_histories.setdefault(pair_key(speaker_id, target_id), [])
        _append_capped(history, record, CONVERSATION_HISTORY_CAP)
        return record

    def conversation_history(self, a: str, b: str) -> List[DialogueRecord]:
        return list(self.conversation_histories.get(pair_key(a, b), []))

    def record_timeline(self, event_type: str, description: str, importance: float = 0.5) -> TimelineEvent:
        event = TimelineEvent(
            day=self.environment.day,
            time=self.environment.time,
            type=event_type,
            description=description,
            importance=importance,
        )
        self.timeline.append(event)
        return event

    def unlock_achievement(self, achievement: Achievement) -> bool:
        if any(existing.id == achievement.id for existing in self.achievements):
            return False
        self.achievements.append(achievement)
        return True

    # ------------------------------------------------------------------
    # Dialogue and thinking flags
    # ------------------------------------------------------------------

    def show_dialogue(self, speaker_id: str, text: str, target_id: Optional[str], expires_at: float) -> None:
        self.active_dialogues[speaker_id] = ActiveDialogue(
            speaker_id=speaker_id, target_id=target_id, text=text, expires_at=expires_at
        )

    def clear_dialogue(self, speaker_id: str) -> None:
        self.active_dialogues.pop(speaker_id, None)

    def expire_dialogues(self, now: float) -> List[str]:
        expired = [sid for sid, bubble in self.active_dialogues.items() if bubble.expires_at <= now]
        for speaker_id in expired:
            del self.active_dialogues[speaker_id]
        return expired

    def show_thought(self, entity_id: str, text: str, expires_at: float) -> None:
        self.active_thoughts[entity_id] = ActiveDialogue(speaker_id=entity_id, text=text, expires_at=expires_at)

    def expire_thoughts(self, now: float) -> List[str]:
        expired = [eid for eid, bubble in self.active_thoughts.items() if bubble.expires_at <= now]
        for entity_id in expired:
            del self.active_thoughts[entity_id]
        return expired

    def mark_observed(self, entity_id: str, element_id: str) -> bool:
        """Record that ``entity_id`` has seen ``element_id``; ``False`` if it already had."""
        seen = self.observed_elements.setdefault(entity_id, set())
        if element_id in seen:
            return False
        seen.add(element_id)
        return True

    def is_busy(self, now: float) -> bool:
        if self.busy and self.busy_release_at is not None and now >= self.busy_release_at:
            self.busy = False
            self.busy_release_at = None
        return self.busy

    def acquire_busy(self, now: float) -> bool:
        """Take the global single-flight gate; ``False`` if already held."""
        if self.is_busy(now):
            return False
        self.busy = True
        self.busy_release_at = None
        return True

    def release_busy(self, at: Optional[float] = None) -> None:
        """Release now, or schedule the release for ``at``."""
        if at is None:
            self.busy = False
            self.busy_release_at = None
        else:
            self.busy_release_at = at

    def set_in_dialogue(self, entity_id: str, flag: bool, now: Optional[float] = None) -> None:
        if flag:
            self.in_dialogue[entity_id] = self.clock if now is None else now
        else:
            self.in_dialogue.pop(entity_id, None)

    def is_in_dialogue(self, entity_id: str) -> bool:
        return entity_id in self.in_dialogue

    def set_thinking(self, entity_id: str, flag: bool) -> None:
        if flag:
            self.thinking.add(entity_id)
        else:
            self.thinking.discard(entity_id)

    def set_intent(self, entity_id: str, action: ActivityKind) -> None:
        self.ai_intents[entity_id] = action

    def pop_intent(self, entity_id: str) -> Optional[ActivityKind]:
        return self.ai_intents.pop(entity_id, None)

    def queue_message(self, message: IncomingMessage) -> None:
        self.incoming_messages.setdefault(message.target_id, []).append(message)

    def pop_message(self, entity_id: str) -> Optional[IncomingMessage]:
        queue = self.incoming_messages.get(entity_id)
        if not queue:
            return None
        return queue.pop(0)

    def conversation(self, entity_id: str) -> ConversationState:
        return self.conversation_state.setdefault(entity_id, ConversationState())

    def set_conversation(self, entity_id: str, state: ConversationState) -> None:
        self.conversation_state[entity_id] = state

    # ------------------------------------------------------------------
    # Directive and camera
    # ------------------------------------------------------------------

    def set_user_directive(self, directive: Optional[str]) -> None:
        self.user_directive = directive or None

    def consume_user_directive(self) -> Optional[str]:
        directive, self.user_directive = self.user_directive, None
        return directive

    def set_camera_target(self, entity_id: Optional[str]) -> None:
        self.camera_target = entity_id

    # ------------------------------------------------------------------
    # Patches
    # ------------------------------------------------------------------

    def post_patch(self, patch: StatePatch) -> None:
        self._pending.append(patch)

    def pending_patch_count(self) -> int:
        return len(self._pending)

    def apply_pending_patches(self) -> int:
        """Apply queued patches in posting order; returns how many ran."""

        applied = 0
        while self._pending:
            patch = self._pending.popleft()
            patch.apply(self)
            applied += 1
        return applied

    # ------------------------------------------------------------------
    # Snapshots and persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> "WorldStateStore":
        """Deep copy of all state; pending patches are not carried over."""

        pending, self._pending = self._pending, deque()
        try:
            clone = copy.deepcopy(self)
        finally:
            self._pending = pending
        return clone

    def reset_runtime(self, now: Optional[float] = None) -> None:
        """Clear every runtime-only slice and rebuild it from the persisted ones.

        Living entities go back to their spawn positions, get any missing
        needs/emotion/lifecycle shards, and restart their cadences at ``now``.
        """

        now = self.clock if now is None else now
        self.clock = now
        self.positions = {}
        self.activities = {}
        self.dialogue_records = []
        self.active_dialogues = {}
        self.active_thoughts = {}
        self.busy = False
        self.busy_release_at = None
        self.in_dialogue = {}
        self.thinking = set()
        self.ai_intents = {}
        self.incoming_messages = {}
        self.conversation_state = {}
        self.spawned_at = {}
        self.observed_elements = {}
        self.camera_target = None
        self._pending.clear()

        for entity_id in self.living_entity_ids():
            entry = self.registry[entity_id]
            self.positions[entity_id] = entry.spawn_position.model_copy()
            self.spawned_at[entity_id] = now
            if entity_id not in self.needs:
                self.needs[entity_id] = default_needs(entry.kind)
            if entity_id not in self.emotions:
                index = personality_index_for(entity_id.split("-", 1)[-1]) if entry.kind == EntityKind.CRITTER else None
                self.emotions[entity_id] = initial_emotion(index)
            if entry.kind == EntityKind.CRITTER and entity_id not in self.lifecycles:
                self.lifecycles[entity_id] = create_lifecycle(entry.generation)

        self._log_counter = max(
            (int(entry.id.rsplit("-", 1)[-1]) for entry in self.activity_log if entry.id.rsplit("-", 1)[-1].isdigit()),
            default=0,
        )
        self._dialogue_counter = 0

    def to_persisted(self):
        from .persistence import PersistedWorld

        return PersistedWorld.from_store(self)

    def load_persisted(self, world) -> None:
        world.apply_to(self)


__all__ = [
    "ROBOT_ID",
    "DEFAULT_CRITTERS",
    "StatePatch",
    "WorldStateStore",
]
