"""
Persistence: versioned world snapshots and pluggable storage backends.

A saved world is a plain JSON-compatible dict (the "blob") validated into
``PersistedWorld``. Only durable state is saved. Positions, activities, speech
bubbles, the busy gate, in-dialogue/thinking flags, intents and the camera
target are runtime-only and rebuilt on load.

Blobs carry a ``version``. Older blobs are walked forward one step at a time
by ``migrate_blob`` (v1 -> v2 -> ... -> v9); each step only adds or reshapes
fields, so a v1 save still loads as a complete world. Blobs written by a newer
version, or blobs that are not a world at all, raise typed errors unless the
``reset`` policy is configured, in which case a fresh default world is used
and the reset is logged.

Three backends implement ``PersistenceStrategy``:
1. InMemoryPersistence - dict-backed, lost on exit (tests, prototyping)
2. JsonPersistence - one human-readable JSON file per save slot
3. PostgresPersistence - a single upserted JSONB row per slot (asyncpg)

Usage pattern:
    persistence = JsonPersistence()
    await persistence.initialize()
    await save_store(store, persistence)
    restored = await load_store(persistence)
    await persistence.close()
"""

from __future__ import annotations

import asyncio
import copy
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from .config import Config
from .logging_utils import log_error, log_info, log_success
from .memory import MemoryStore
from .schemas import (
    Achievement,
    ActivityLogEntry,
    Building,
    CombatStats,
    DialogueRecord,
    EmotionState,
    EntityKind,
    EnvironmentState,
    Inventory,
    LifecycleState,
    Memory,
    NeedsState,
    RegistryEntry,
    ResourceNode,
    RobotStatus,
    Season,
    Settings,
    ThoughtEntry,
    TimelineEvent,
    Weather,
)
from .resources import initial_resource_nodes
from .store import DEFAULT_CRITTERS, ROBOT_ID, WorldStateStore
from .survival import default_robot_status
from .wildlife import DEFAULT_HERD, wild_animal_id

try:  # Optional dependency (only needed for PostgresPersistence)
    import asyncpg
except ImportError:  # pragma: no cover - asyncpg may not be installed for json/memory usage
    asyncpg = None


PERSIST_VERSION = 9
DEFAULT_SLOT = "default"


class UnsupportedSchemaVersionError(Exception):
    """Raised when a saved world was written by a newer version."""

    def __init__(self, version: int):
        self.version = version
        super().__init__(
            f"Saved world has schema version {version}, newer than supported version {PERSIST_VERSION}.\n\n"
            "Tips:\n"
            "  - Upgrade critterworld to load this save\n"
            "  - Or set FUTURE_SCHEMA_POLICY=reset to start a fresh world instead"
        )


class CorruptWorldStateError(Exception):
    """Raised when a saved blob is not a readable world."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(
            f"Saved world is unreadable: {reason}\n\n"
            "Tips:\n"
            "  - Check the save file or database row was not truncated or hand-edited\n"
            "  - Or set FUTURE_SCHEMA_POLICY=reset to start a fresh world instead"
        )


# ============================================================================
# Snapshot model
# ============================================================================


class PersistedEnvironment(BaseModel):
    time: float = 12.0
    day: int = 1
    season: Season = Season.SPRING
    weather: Weather = Weather.SUNNY
    temperature: float = 15.0


class PersistedWorld(BaseModel):
    """Everything that survives a restart."""

    version: int = PERSIST_VERSION
    settings: Settings = Field(default_factory=Settings)
    memories: Dict[str, List[Memory]] = Field(default_factory=dict)
    emotions: Dict[str, EmotionState] = Field(default_factory=dict)
    relationships: Dict[str, float] = Field(default_factory=dict)
    needs: Dict[str, NeedsState] = Field(default_factory=dict)
    lifecycles: Dict[str, LifecycleState] = Field(default_factory=dict)
    registry: List[RegistryEntry] = Field(default_factory=list)
    robot_status: RobotStatus = Field(default_factory=RobotStatus)
    environment: PersistedEnvironment = Field(default_factory=PersistedEnvironment)
    resources: List[ResourceNode] = Field(default_factory=list)
    buildings: List[Building] = Field(default_factory=list)
    inventory: Inventory = Field(default_factory=Inventory)
    activity_log: List[ActivityLogEntry] = Field(default_factory=list)
    robot_thoughts: List[ThoughtEntry] = Field(default_factory=list)
    critter_thoughts: Dict[str, List[ThoughtEntry]] = Field(default_factory=dict)
    conversation_histories: Dict[str, List[DialogueRecord]] = Field(default_factory=dict)
    combat_stats: CombatStats = Field(default_factory=CombatStats)
    timeline: List[TimelineEvent] = Field(default_factory=list)
    achievements: List[Achievement] = Field(default_factory=list)
    user_directive: Optional[str] = None

    @classmethod
    def from_store(cls, store: WorldStateStore) -> "PersistedWorld":
        env = store.environment
        snapshot = cls(
            settings=store.settings,
            memories=store.memories.to_dict(),
            emotions=dict(store.emotions),
            relationships=dict(store.relationships),
            needs=dict(store.needs),
            lifecycles=dict(store.lifecycles),
            registry=list(store.registry.values()),
            robot_status=store.robot_status,
            environment=PersistedEnvironment(
                time=env.time,
                day=env.day,
                season=env.season,
                weather=env.weather,
                temperature=env.temperature,
            ),
            resources=list(store.resources),
            buildings=list(store.buildings),
            inventory=store.inventory,
            activity_log=list(store.activity_log),
            robot_thoughts=list(store.robot_thoughts),
            critter_thoughts={eid: list(items) for eid, items in store.critter_thoughts.items()},
            conversation_histories={key: list(items) for key, items in store.conversation_histories.items()},
            combat_stats=store.combat_stats,
            timeline=list(store.timeline),
            achievements=list(store.achievements),
            user_directive=store.user_directive,
        )
        # Detach from the live store so later mutations don't leak into the snapshot.
        return snapshot.model_copy(deep=True)

    def apply_to(self, store: WorldStateStore) -> WorldStateStore:
        """Replace ``store``'s durable slices with this snapshot and reset runtime state."""

        world = self.model_copy(deep=True)
        store.settings = world.settings
        store.memories = MemoryStore.from_dict(world.memories, max_per_entity=store.memories.max_per_entity)
        store.emotions = world.emotions
        store.relationships = world.relationships
        store.needs = world.needs
        store.lifecycles = world.lifecycles
        store.registry = {entry.id: entry for entry in world.registry}
        store.robot_status = world.robot_status
        env = world.environment
        store.environment = EnvironmentState(
            time=env.time,
            day=env.day,
            season=env.season,
            weather=env.weather,
            target_weather=env.weather,
            temperature=env.temperature,
        )
        store.resources = world.resources or initial_resource_nodes()
        store.buildings = world.buildings
        store.inventory = world.inventory
        store.activity_log = world.activity_log
        store.robot_thoughts = world.robot_thoughts
        store.critter_thoughts = world.critter_thoughts
        store.conversation_histories = world.conversation_histories
        store.combat_stats = world.combat_stats
        store.timeline = world.timeline
        store.achievements = world.achievements
        store.user_directive = world.user_directive

        if ROBOT_ID not in store.registry:
            store.add_robot(now=store.clock)
        if not any(entry.kind == EntityKind.WILD_ANIMAL for entry in store.registry.values()):
            counts: Dict[str, int] = {}
            for species, position in DEFAULT_HERD:
                counts[species] = counts.get(species, 0) + 1
                store.add_wild_animal(wild_animal_id(species, counts[species]), position, now=store.clock)

        store.reset_runtime(store.clock)
        return store


# ============================================================================
# Forward migrations
# ============================================================================


def _legacy_memory(item: Any, now: float) -> Any:
    if isinstance(item, str):
        return {
            "content": item,
            "timestamp": now,
            "importance": 0.3,
            "emotional_weight": 0.1,
            "entities": [],
            "type": "observation",
        }
    return item


def _registry_entry(entity_id: str, color: str, spawn: Dict[str, float], kind: str = "critter") -> Dict[str, Any]:
    return {
        "id": entity_id,
        "name": "Robot" if kind == "robot" else entity_id,
        "kind": kind,
        "color": color,
        "spawn_position": spawn,
        "is_alive": True,
        "generation": 0,
    }


def _default_critter_entry(index: int) -> Dict[str, Any]:
    name, color, position = DEFAULT_CRITTERS[index]
    return _registry_entry(name, color, position.model_dump())


def _to_v2(data: Dict[str, Any], now: float) -> Dict[str, Any]:
    """Plain-string memories become Memory records, keyed by entity id."""

    memories: Dict[str, Any] = {}
    for entity_id, items in (data.get("memories") or {}).items():
        memories[entity_id] = [_legacy_memory(item, now) for item in items or []]

    robot_memories = data.pop("robot_memories", None)
    if isinstance(robot_memories, list):
        memories[ROBOT_ID] = [_legacy_memory(item, now) for item in robot_memories]

    critter_memories = data.pop("critter_memories", None)
    if isinstance(critter_memories, dict):
        for entity_id, items in critter_memories.items():
            memories[entity_id] = [_legacy_memory(item, now) for item in items or []] if isinstance(items, list) else []

    data["memories"] = memories
    return data


def _to_v3(data: Dict[str, Any], now: float) -> Dict[str, Any]:
    """Needs, lifecycles, the entity registry and ambient sound settings."""

    data.setdefault("needs", {})
    data.setdefault("lifecycles", {})
    settings = data.setdefault("settings", {})
    settings.setdefault("ambient_sound", True)
    if not data.get("registry"):
        data["registry"] = [
            _registry_entry(ROBOT_ID, "#00e5ff", {"x": 0.0, "y": 0.5, "z": 0.0}, kind="robot"),
            _default_critter_entry(0),
            _default_critter_entry(1),
            _default_critter_entry(2),
        ]
    return data


def _to_v4(data: Dict[str, Any], now: float) -> Dict[str, Any]:
    environment = data.setdefault("environment", {})
    environment.setdefault("temperature", 15.0)
    return data


def _to_v5(data: Dict[str, Any], now: float) -> Dict[str, Any]:
    """Critter-D and Critter-E join the population."""

    registry = data.setdefault("registry", [])
    known = {entry.get("id") for entry in registry if isinstance(entry, dict)}
    for index in (3, 4):
        if DEFAULT_CRITTERS[index][0] not in known:
            registry.append(_default_critter_entry(index))
    return data


def _to_v6(data: Dict[str, Any], now: float) -> Dict[str, Any]:
    environment = data.setdefault("environment", {})
    environment.setdefault("day", 1)
    environment.setdefault("season", Season.SPRING.value)
    data.setdefault("robot_thoughts", [])
    return data


def _to_v7(data: Dict[str, Any], now: float) -> Dict[str, Any]:
    data.setdefault("critter_thoughts", {})
    return data


def _to_v8(data: Dict[str, Any], now: float) -> Dict[str, Any]:
    data.setdefault("robot_status", default_robot_status().model_dump(mode="json"))
    return data


def _to_v9(data: Dict[str, Any], now: float) -> Dict[str, Any]:
    """Buildings, activity log, timeline, achievements, combat stats and inventory."""

    data.setdefault("buildings", [])
    data.setdefault("activity_log", [])
    data.setdefault("timeline", [])
    data.setdefault("achievements", [])
    data.setdefault("combat_stats", CombatStats().model_dump())
    data.setdefault("inventory", Inventory().model_dump())
    return data


MIGRATIONS: Dict[int, Callable[[Dict[str, Any], float], Dict[str, Any]]] = {
    2: _to_v2,
    3: _to_v3,
    4: _to_v4,
    5: _to_v5,
    6: _to_v6,
    7: _to_v7,
    8: _to_v8,
    9: _to_v9,
}


def migrate_blob(blob: Any, now: float = 0.0) -> Dict[str, Any]:
    """Walk a saved blob forward to ``PERSIST_VERSION``.

    A blob without a ``version`` key is treated as version 1. The input is
    never mutated.

    Raises:
        CorruptWorldStateError: ``blob`` is not a dict or its version is not a
            positive integer
        UnsupportedSchemaVersionError: ``blob`` is newer than this code
    """

    if not isinstance(blob, dict):
        raise CorruptWorldStateError(f"expected an object, got {type(blob).__name__}")

    version = blob.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise CorruptWorldStateError(f"invalid version {version!r}")
    if version > PERSIST_VERSION:
        raise UnsupportedSchemaVersionError(version)

    data = copy.deepcopy(blob)
    while version < PERSIST_VERSION:
        version += 1
        try:
            data = MIGRATIONS[version](data, now)
        except (AttributeError, TypeError) as exc:
            raise CorruptWorldStateError(f"migration to v{version} failed: {exc}") from exc
        data["version"] = version
        log_info(f"[Persistence] Migrated saved world to v{version}")
    return data


def default_world(now: float = 0.0) -> PersistedWorld:
    return PersistedWorld.from_store(WorldStateStore.with_default_population(now=now))


def load_world(blob: Any, policy: Optional[str] = None, now: float = 0.0) -> PersistedWorld:
    """Migrate and validate a saved blob (a dict or its JSON text).

    Args:
        blob: Saved world
        policy: ``raise`` (default from ``Config.FUTURE_SCHEMA_POLICY``) or
            ``reset``, which swaps an unreadable or future blob for a fresh
            default world
        now: Timestamp given to memories created during migration
    """

    policy = policy or Config.FUTURE_SCHEMA_POLICY
    try:
        if isinstance(blob, (str, bytes)):
            try:
                blob = json.loads(blob)
            except ValueError as exc:
                raise CorruptWorldStateError(f"invalid JSON: {exc}") from exc
        migrated = migrate_blob(blob, now=now)
        try:
            return PersistedWorld.model_validate(migrated)
        except ValidationError as exc:
            raise CorruptWorldStateError(f"{exc.error_count()} invalid field(s)") from exc
    except (UnsupportedSchemaVersionError, CorruptWorldStateError) as exc:
        if policy != "reset":
            raise
        log_error(f"[Persistence] {exc.args[0].splitlines()[0]} Starting a fresh world.")
        return default_world(now)


# ============================================================================
# Backends
# ============================================================================


class PersistenceStrategy(ABC):
    """Abstract base class for saved-world storage.

    Backends only move JSON-compatible blobs; versioning, migration and
    validation happen in ``save_world``/``get_world`` so every backend gets
    them for free.

    Async interface rationale:
    - Disk and database I/O must not stall the frame loop
    - initialize() and close() manage pools and directories
    - Async is a no-op for InMemoryPersistence but matters for Postgres

    Each backend keeps any number of named save slots; most hosts only ever
    use ``"default"``.
    """

    async def initialize(self) -> None:
        """Prepare the backend (pools, directories, tables). Idempotent."""

    async def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def save_blob(self, slot: str, blob: Dict[str, Any]) -> None:
        """Store ``blob`` under ``slot``, replacing anything already there."""

    @abstractmethod
    async def get_blob(self, slot: str) -> Optional[Any]:
        """Return the raw blob saved under ``slot`` or ``None`` if there is none."""

    async def save_world(self, world: PersistedWorld, slot: str = DEFAULT_SLOT) -> None:
        await self.save_blob(slot, world.model_dump(mode="json"))

    async def get_world(
        self,
        slot: str = DEFAULT_SLOT,
        policy: Optional[str] = None,
        now: float = 0.0,
    ) -> Optional[PersistedWorld]:
        blob = await self.get_blob(slot)
        if blob is None:
            return None
        return load_world(blob, policy=policy, now=now)


class InMemoryPersistence(PersistenceStrategy):
    """Dict-backed storage. Saved worlds are lost when the process exits.

    Blobs are deep-copied on the way in and out so callers can never alias
    stored state.
    """

    def __init__(self) -> None:
        self.blobs: Dict[str, Dict[str, Any]] = {}

    async def save_blob(self, slot: str, blob: Dict[str, Any]) -> None:
        self.blobs[slot] = copy.deepcopy(blob)

    async def get_blob(self, slot: str) -> Optional[Any]:
        blob = self.blobs.get(slot)
        return copy.deepcopy(blob) if blob is not None else None


class JsonPersistence(PersistenceStrategy):
    """One pretty-printed JSON file per save slot.

    The default slot is written to ``path`` itself (``Config.SAVE_PATH`` when
    omitted); any other slot goes next to it as ``<stem>-<slot>.json``.
    File I/O runs in a worker thread via ``asyncio.to_thread``.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else Config.SAVE_PATH

    def path_for(self, slot: str) -> Path:
        if slot == DEFAULT_SLOT:
            return self.path
        return self.path.with_name(f"{self.path.stem}-{slot}{self.path.suffix or '.json'}")

    async def initialize(self) -> None:
        await asyncio.to_thread(self.path.parent.mkdir, parents=True, exist_ok=True)

    async def save_blob(self, slot: str, blob: Dict[str, Any]) -> None:
        target = self.path_for(slot)
        await asyncio.to_thread(target.write_text, json.dumps(blob, indent=2))

    async def get_blob(self, slot: str) -> Optional[Any]:
        target = self.path_for(slot)

        def _read() -> Optional[str]:
            if not target.exists():
                return None
            return target.read_text()

        # Raw text: load_world reports bad JSON as a corrupt world.
        return await asyncio.to_thread(_read)


class PostgresPersistence(PersistenceStrategy):
    """PostgreSQL-backed storage using an asyncpg connection pool.

    Table (created by ``initialize`` when missing):
    - world_saves: slot TEXT PRIMARY KEY, version INT, state JSONB,
      saved_at TIMESTAMPTZ

    Each save upserts the slot's single row.
    """

    def __init__(self, database_url: Optional[str] = None):
        if asyncpg is None:  # pragma: no cover - handled during runtime when dependency missing
            raise ImportError(
                "asyncpg is required for PostgresPersistence. Install with `pip install critterworld[postgres]`."
            )

        self.database_url = database_url or Config.DATABASE_URL
        self.pool: Optional[asyncpg.Pool] = None

    async def initialize(self) -> None:
        if self.pool is None:
            self.pool = await asyncpg.create_pool(self.database_url)
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS world_saves (
                        slot TEXT PRIMARY KEY,
                        version INTEGER NOT NULL,
                        state JSONB NOT NULL,
                        saved_at TIMESTAMPTZ NOT NULL DEFAULT now()
                    )
                    """
                )

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    async def save_blob(self, slot: str, blob: Dict[str, Any]) -> None:
        assert self.pool is not None, "Persistence not initialized"

        query = """
            INSERT INTO world_saves (slot, version, state, saved_at)
            VALUES ($1, $2, $3::jsonb, now())
            ON CONFLICT (slot) DO UPDATE
            SET version = $2, state = $3::jsonb, saved_at = now()
        """

        async with self.pool.acquire() as conn:
            await conn.execute(query, slot, int(blob.get("version", PERSIST_VERSION)), json.dumps(blob))

    async def get_blob(self, slot: str) -> Optional[Any]:
        assert self.pool is not None, "Persistence not initialized"

        query = """
            SELECT state
            FROM world_saves
            WHERE slot = $1
        """

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, slot)

        if row is None:
            return None
        state = row["state"]
        return json.loads(state) if isinstance(state, str) else state


# ============================================================================
# Store helpers
# ============================================================================


async def save_store(
    store: WorldStateStore,
    persistence: PersistenceStrategy,
    slot: str = DEFAULT_SLOT,
) -> PersistedWorld:
    world = PersistedWorld.from_store(store)
    await persistence.save_world(world, slot)
    log_success(f"[Persistence] Saved world (day {world.environment.day}, slot '{slot}')")
    return world


async def load_store(
    persistence: PersistenceStrategy,
    slot: str = DEFAULT_SLOT,
    store: Optional[WorldStateStore] = None,
    policy: Optional[str] = None,
) -> Optional[WorldStateStore]:
    """Load ``slot`` into ``store`` (or a new store); ``None`` when nothing was saved."""

    target = store if store is not None else WorldStateStore()
    world = await persistence.get_world(slot, policy=policy, now=target.clock)
    if world is None:
        return None
    world.apply_to(target)
    log_info(f"[Persistence] Loaded world (day {target.environment.day}, {target.alive_count()} critters)")
    return target


__all__ = [
    "PERSIST_VERSION",
    "DEFAULT_SLOT",
    "UnsupportedSchemaVersionError",
    "CorruptWorldStateError",
    "PersistedEnvironment",
    "PersistedWorld",
    "MIGRATIONS",
    "migrate_blob",
    "default_world",
    "load_world",
    "PersistenceStrategy",
    "InMemoryPersistence",
    "JsonPersistence",
    "PostgresPersistence",
    "save_store",
    "load_store",
]
