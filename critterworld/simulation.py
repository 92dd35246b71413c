"""
Simulation: the per-frame driver that ties every subsystem to one store.

The host calls ``tick(delta_seconds)`` once per frame. A tick never awaits:

1. advance the clock and apply state patches posted by finished async tasks
2. snapshot positions (all proximity scans in this tick read the snapshot)
3. tick the environment cycle (time, weather, hazards, regeneration, spawns)
4. advance construction sites
5. for each living entity, in registry order:
   rules (needs -> lifecycle -> emotion -> activity), then replies,
   dialogue initiation and thinking
6. expire speech/thought bubbles, run dialogue releases and the stuck
   failsafe, release the busy gate when its delay has passed
7. affinity policy, achievements (pruning per-entity timers of the dead),
   tick listeners

Generative work started in step 5 runs as ``asyncio.Task``s owned by the
dialogue orchestrator and thinking loop. ``drain()`` waits for them and applies
their patches, which is what tests and shutdown use.

``run()`` is the async convenience loop: it initializes persistence, ticks at a
fixed step (optionally in real time), autosaves, and always closes the backend.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .buildings import consume_materials, create_building, update_construction
from .cadence import Cadence, CadenceClock
from .config import Config
from .dialogue import DialogueOrchestrator
from .environment.cycle import EnvironmentCycle
from .logging_utils import log_deterministic, log_error, log_info, log_success
from .perception import positions_snapshot
from .persistence import PersistenceStrategy, save_store
from .relationships import AffinityDecayPolicy, StickyAffinityPolicy
from .schemas import Achievement, Building, BuildingType, EntityKind, LogCategory, LogImportance, Position
from .scoring import update_achievements
from .simulation_rules import CritterWorldRules, SimulationRules
from .speech import SpeechQueue
from .store import WorldStateStore
from .thinking import ThinkingLoop


ACHIEVEMENT_CHECK = Cadence(every=10.0)
CONSTRUCTION_REACH = 3.0


@dataclass
class TickResult:
    """What happened during one tick."""

    now: float
    delta_seconds: float
    patches_applied: int = 0
    dialogues_started: List[str] = field(default_factory=list)
    replies_started: List[str] = field(default_factory=list)
    thoughts_started: List[str] = field(default_factory=list)
    deaths: List[str] = field(default_factory=list)
    births: List[str] = field(default_factory=list)
    buildings_completed: List[str] = field(default_factory=list)
    stuck_released: List[str] = field(default_factory=list)
    achievements: List[Achievement] = field(default_factory=list)


TickListener = Callable[[TickResult, WorldStateStore], None]


class Simulation:
    """Owns the subsystems for one world and steps them frame by frame.

    All collaborators are injectable. Defaults are built around ``store``:
    ``CritterWorldRules``, an ``EnvironmentCycle``, a ``DialogueOrchestrator``
    and a ``ThinkingLoop`` using the provider in ``store.settings``, sticky
    affinity, and no persistence unless a backend is given.

    Args:
        store: World state
        rules: Deterministic per-entity physics
        cycle: Environment driver
        dialogue: Conversation scheduler
        thinking: Thought scheduler
        persistence: Optional backend used by ``run`` and ``save``
        rng: Random source shared by the default collaborators
        speech: Optional speech queue handed to the default dialogue orchestrator
        affinity_policy: How relationships evolve without interaction
        tick_listeners: Callables invoked with ``(result, store)`` after each tick.
            A failing listener is logged and does not stop the simulation.
    """

    def __init__(
        self,
        store: WorldStateStore,
        rules: Optional[SimulationRules] = None,
        cycle: Optional[EnvironmentCycle] = None,
        dialogue: Optional[DialogueOrchestrator] = None,
        thinking: Optional[ThinkingLoop] = None,
        persistence: Optional[PersistenceStrategy] = None,
        rng: Optional[random.Random] = None,
        speech: Optional[SpeechQueue] = None,
        affinity_policy: Optional[AffinityDecayPolicy] = None,
        tick_listeners: Optional[List[TickListener]] = None,
    ) -> None:
        self.store = store
        self.rng = rng or random
        self.rules = rules or CritterWorldRules(rng=self.rng)
        self.cycle = cycle or EnvironmentCycle(store, rng=self.rng)
        self.speech = speech
        self.dialogue = dialogue or DialogueOrchestrator(store, rng=self.rng, speech=speech)
        self.thinking = thinking or ThinkingLoop(store)
        self.persistence = persistence
        self.affinity_policy = affinity_policy or StickyAffinityPolicy()
        self.tick_listeners = tick_listeners or []
        self.clock = CadenceClock()
        self.ticks = 0
        self._building_counter = len(store.buildings)

    @property
    def now(self) -> float:
        return self.store.clock

    # ------------------------------------------------------------------
    # Frame step
    # ------------------------------------------------------------------

    def tick(self, delta_seconds: float) -> TickResult:
        store = self.store
        delta = max(0.0, delta_seconds)
        now = store.clock + delta
        store.clock = now
        self.ticks += 1

        result = TickResult(now=now, delta_seconds=delta)
        result.patches_applied = store.apply_pending_patches()
        living_before = set(store.living_entity_ids())
        known_before = set(store.registry)

        positions = positions_snapshot(store.positions)
        self.cycle.tick(now, delta)
        result.buildings_completed = self._advance_construction(delta, positions)

        for entity_id in list(store.living_entity_ids()):
            if not store.is_alive(entity_id):
                continue
            self.rules.apply_entity_tick(store, entity_id, now, delta, positions)
            if not store.is_alive(entity_id):
                continue
            if self.dialogue.check_response(entity_id, now):
                result.replies_started.append(entity_id)
            elif self.dialogue.check_initiation(entity_id, now, positions):
                result.dialogues_started.append(entity_id)
            if self.thinking.check(entity_id, now, positions):
                result.thoughts_started.append(entity_id)

        store.expire_dialogues(now)
        store.expire_thoughts(now)
        result.stuck_released = self.dialogue.update(now)
        store.is_busy(now)

        store.relationships = self.affinity_policy.decay(store.relationships, delta)

        if self.clock.due("achievements", ACHIEVEMENT_CHECK, now):
            result.achievements = update_achievements(store, now)
            living = store.living_entity_ids()
            self.dialogue.prune(living)
            self.thinking.prune(living)

        living_after = set(store.living_entity_ids())
        result.deaths = sorted(living_before - living_after)
        result.births = sorted(
            eid for eid in living_after - living_before if eid not in known_before
        )

        for listener in self.tick_listeners:
            try:
                listener(result, store)
            except Exception as exc:  # pragma: no cover - diagnostic hook
                log_error(f"[Simulation] Tick listener failed: {exc}")

        return result

    async def drain(self) -> int:
        """Wait for all in-flight generations and apply their patches."""

        await asyncio.gather(self.dialogue.drain(), self.thinking.drain())
        return self.store.apply_pending_patches()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def start_construction(self, building_type: BuildingType, position: Position) -> Optional[Building]:
        """Pay for and place a construction site; ``None`` if materials are short."""

        store = self.store
        remaining = consume_materials(building_type, store.inventory)
        if remaining is None:
            return None

        self._building_counter += 1
        building_id = f"building-{self._building_counter}"
        while any(existing.id == building_id for existing in store.buildings):
            self._building_counter += 1
            building_id = f"building-{self._building_counter}"

        building = create_building(building_type, position, building_id)
        store.set_inventory(remaining)
        store.add_building(building)
        store.log_activity(LogCategory.BUILD, f"Started building a {building.name}")
        log_deterministic(f"[Build] {building.name} started at ({position.x:.0f}, {position.z:.0f})")
        return building

    def _advance_construction(self, delta: float, positions) -> List[str]:
        completed: List[str] = []
        if delta <= 0:
            return completed

        store = self.store
        builders = [
            eid
            for eid in store.living_entity_ids()
            if store.kind_of(eid) in (EntityKind.ROBOT, EntityKind.CRITTER)
        ]
        for building in list(store.buildings):
            if building.built:
                continue
            workers = sum(
                1
                for eid in builders
                if eid in positions
                and positions[eid].distance_to(building.position) <= building.radius + CONSTRUCTION_REACH
            )
            updated = update_construction(building, delta, workers=workers)
            store.replace_building(updated)
            if updated.built:
                completed.append(updated.id)
                store.log_activity(LogCategory.BUILD, f"Finished the {updated.name}", importance=LogImportance.HIGH)
                store.record_timeline("construction", f"Finished the {updated.name}", importance=0.6)
                log_success(f"[Build] {updated.name} completed")
        return completed

    # ------------------------------------------------------------------
    # Host conveniences
    # ------------------------------------------------------------------

    def give_directive(self, directive: Optional[str]) -> None:
        """Leave a one-shot instruction for the robot's next thought."""
        self.store.set_user_directive(directive)

    async def save(self) -> None:
        if self.persistence is None:
            raise RuntimeError("Simulation has no persistence backend to save to")
        await save_store(self.store, self.persistence)

    async def run(
        self,
        seconds: float,
        step: float = 0.1,
        realtime: bool = False,
        autosave_every: Optional[float] = 60.0,
    ) -> WorldStateStore:
        """Tick for ``seconds`` of simulated time.

        Args:
            seconds: Simulated duration
            step: Fixed tick length
            realtime: Sleep ``step`` between ticks instead of yielding
            autosave_every: Autosave period in simulated seconds (needs a
                persistence backend; ``None`` disables)
        """

        if step <= 0:
            raise ValueError("step must be positive")

        if self.persistence is not None:
            await self.persistence.initialize()

        try:
            self.rules.on_simulation_start(self.store)
            log_info(
                f"[Simulation] Running {seconds:.0f}s at {step:.2f}s/tick "
                f"({self.store.alive_count()} critters, provider {self.store.settings.provider or Config.LLM_PROVIDER})"
            )

            autosave = Cadence(every=autosave_every, delay=autosave_every) if autosave_every else None
            start = self.store.clock
            self.clock.mark("autosave", start)
            elapsed = 0.0
            while elapsed < seconds:
                self.tick(step)
                elapsed += step
                if self.persistence is not None and autosave is not None:
                    if self.clock.due("autosave", autosave, self.store.clock):
                        await self.save()
                await asyncio.sleep(step if realtime else 0)

            await self.drain()
            self.rules.on_simulation_end(self.store)
            if self.persistence is not None:
                await self.save()
            log_success(f"[Simulation] Finished on day {self.store.environment.day}")
            return self.store

        finally:
            if self.speech is not None:
                self.speech.stop_all()
            if self.persistence is not None:
                await self.persistence.close()


__all__ = ["Simulation", "TickResult", "TickListener"]
