"""
Thinking loop: periodic inner monologue that can steer the next activity.

Every robot and critter thinks on its own interval (20s for the robot,
``30 + personality_index * 5`` seconds for a critter). A thought is generated
from a plain-text situation report and validated into ``ThoughtResult``; any
malformed output becomes ``fallback_thought``. The completion patch records the
thought, remembers it, shows a thought bubble, and, when the suggested action
is valid for the entity, leaves an intent that the activity selector honours on
its next pass.

Like dialogue, generation runs as an ``asyncio.Task`` and only ever writes to
the store through a ``StatePatch``.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set, Union

from .activities import is_valid_action
from .buildings import available_building_types, create_building, describe_building
from .cadence import Cadence, CadenceClock
from .config import Config
from .emotions import emotion_to_dialogue_context, personality_index_for
from .llm_calls import MissingAPIKeyError, generate_thought, parse_thought_response, resolve_api_key
from .logging_utils import log_error, log_info, log_llm
from .memory import create_memory
from .needs import needs_to_dialogue_context
from .perception import nearby_entities
from .schemas import EntityKind, LogCategory, MemoryType, Position, ThoughtEntry, ThoughtResult
from .store import ROBOT_ID, StatePatch, WorldStateStore


ThoughtGenerator = Callable[..., Awaitable[Union[ThoughtResult, str]]]

ROBOT_THINK_INTERVAL = 20.0
CRITTER_THINK_BASE = 30.0
CRITTER_THINK_STEP = 5.0
NEARBY_RADIUS = 25.0
NEARBY_LIMIT = 4
MEMORY_K = 3
PREVIOUS_THOUGHTS = 3
BUBBLE_SECONDS = 5.0
ROBOT_THOUGHT_IMPORTANCE = 0.5
CRITTER_THOUGHT_IMPORTANCE = 0.3


def think_interval(entity_id: str, kind: EntityKind) -> float:
    if kind == EntityKind.ROBOT:
        return ROBOT_THINK_INTERVAL
    return CRITTER_THINK_BASE + personality_index_for(entity_id.split("-", 1)[-1]) * CRITTER_THINK_STEP


class ThinkingLoop:
    """Schedules thoughts per entity and applies their results.

    Args:
        store: World state
        generator: ``generate_thought``-compatible coroutine function; may
            return a ``ThoughtResult`` or raw text (parsed with the strict
            validator and fallback)
        timeout: Seconds before a thought is abandoned
    """

    def __init__(
        self,
        store: WorldStateStore,
        generator: Optional[ThoughtGenerator] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.store = store
        self.generator = generator
        self.timeout = Config.THOUGHT_TIMEOUT_SECONDS if timeout is None else timeout
        self.clock = CadenceClock()
        self._tasks: Set[asyncio.Task] = set()
        self._key_warning_shown = False

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def prune(self, living: Iterable[str]) -> None:
        """Drop thought timers of entities that are gone."""
        alive = set(living)
        for entity_id in [key for key in self.clock.last_run if key not in alive]:
            self.clock.reset(entity_id)

    def _due(self, entity_id: str, kind: EntityKind, now: float) -> bool:
        if entity_id not in self.clock.last_run:
            self.clock.mark(entity_id, self.store.spawned_at.get(entity_id, now))
        return self.clock.peek(entity_id, Cadence(every=think_interval(entity_id, kind)), now)

    def _credentials(self):
        settings = self.store.settings
        if self.generator is not None:
            return settings.provider, settings.api_key, settings.model
        try:
            key = resolve_api_key(settings.provider, settings.api_key)
        except MissingAPIKeyError as exc:
            if not self._key_warning_shown:
                log_info(f"[Thought] Disabled: {exc}")
                self._key_warning_shown = True
            return None
        return settings.provider, key, settings.model

    def check(self, entity_id: str, now: float, positions: Dict[str, Position]) -> bool:
        """Start a thought if one is due; ``True`` when a task started."""

        store = self.store
        kind = store.kind_of(entity_id)
        if kind not in (EntityKind.ROBOT, EntityKind.CRITTER) or not store.is_alive(entity_id):
            return False
        if kind == EntityKind.ROBOT and store.robot_status.malfunctioning:
            return False
        if entity_id in store.thinking or store.is_in_dialogue(entity_id):
            return False
        if not self._due(entity_id, kind, now):
            return False

        credentials = self._credentials()
        if credentials is None:
            return False

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return False

        self.clock.mark(entity_id, now)
        store.set_thinking(entity_id, True)
        situation = self.build_situation(entity_id, kind, positions)
        task = loop.create_task(self._run(credentials, entity_id, kind, situation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        log_llm(f"[Thought] {store.display_name(entity_id)} is thinking")
        return True

    def build_situation(self, entity_id: str, kind: EntityKind, positions: Dict[str, Position]) -> str:
        """Plain-text situation report fed to the thought generator."""

        store = self.store
        env = store.environment
        position = positions.get(entity_id) or store.positions.get(entity_id, Position())
        hours = int(env.time)
        minutes = int((env.time - hours) * 60)

        lines: List[str] = [
            f"Position: ({position.x:.1f}, {position.z:.1f})",
            f"Time: {hours:02d}:{minutes:02d}, day {env.day}, {env.season.value}",
            f"Weather: {env.weather.value}, {env.temperature:.0f}°C",
        ]

        emotion = store.emotions.get(entity_id)
        if emotion is not None:
            lines.append(emotion_to_dialogue_context(emotion))
        needs = store.needs.get(entity_id)
        if needs is not None:
            needs_ctx = needs_to_dialogue_context(needs, kind)
            if needs_ctx:
                lines.append(f"Needs: {needs_ctx}")
        if kind == EntityKind.ROBOT:
            status = store.robot_status
            lines.append(f"Battery: {status.battery:.0f}%, durability: {status.durability:.0f}%")
            buildable = available_building_types(store.inventory)
            if buildable:
                described = "; ".join(
                    describe_building(create_building(btype, position, btype.value)) for btype in buildable
                )
                lines.append(f"Can build: {described}")

        nearby = nearby_entities(
            positions, entity_id, NEARBY_RADIUS, limit=NEARBY_LIMIT, candidates=store.living_entity_ids()
        )
        if nearby:
            described = ", ".join(f"{store.display_name(eid)} ({dist:.0f}m)" for eid, dist in nearby)
            lines.append(f"Nearby: {described}")
        else:
            lines.append("Nearby: nobody")

        related = [eid for eid, _ in nearby]
        memories = store.memories.relevant(entity_id, store.clock, related_ids=related, k=MEMORY_K)
        if memories:
            lines.append("Memories:")
            lines.extend(f"- {memory.content}" for memory in memories)

        previous = store.recent_thoughts(entity_id, PREVIOUS_THOUGHTS)
        if previous:
            lines.append("Recent thoughts:")
            lines.extend(f"- {entry.thought}" for entry in previous)

        if kind == EntityKind.ROBOT:
            directive = store.consume_user_directive()
            if directive:
                lines.append(f"Your operator asks: {directive}")

        return "\n".join(lines)

    async def _invoke(self, credentials, kind: EntityKind, situation: str) -> ThoughtResult:
        provider, api_key, model = credentials
        if self.generator is None:
            return await generate_thought(provider, api_key, situation, kind=kind, model=model)
        result = await self.generator(provider, api_key, situation, kind=kind, model=model)
        if isinstance(result, ThoughtResult):
            return result
        return parse_thought_response(str(result), kind)

    async def _run(self, credentials, entity_id: str, kind: EntityKind, situation: str) -> None:
        try:
            result = await asyncio.wait_for(self._invoke(credentials, kind, situation), timeout=self.timeout)
        except asyncio.TimeoutError:
            log_error(f"[Thought] {entity_id} timed out after {self.timeout:.0f}s")
            self._post_release(entity_id)
            return
        except Exception as exc:
            log_error(f"[Thought] {entity_id} failed: {exc}")
            self._post_release(entity_id)
            return

        self.store.post_patch(
            StatePatch(f"thought {entity_id}", lambda store: self._apply(store, entity_id, kind, result))
        )

    def _post_release(self, entity_id: str) -> None:
        self.store.post_patch(
            StatePatch(f"thought failed {entity_id}", lambda store: store.set_thinking(entity_id, False))
        )

    def _apply(self, store: WorldStateStore, entity_id: str, kind: EntityKind, result: ThoughtResult) -> None:
        store.set_thinking(entity_id, False)
        if not store.is_alive(entity_id):
            return

        now = store.clock
        store.add_thought(
            entity_id,
            ThoughtEntry(thought=result.thought, action=result.action, reason=result.reason, timestamp=now),
        )
        store.log_activity(
            LogCategory.THOUGHT,
            f"{result.action.value}: {result.thought}",
            entity_id=entity_id,
        )
        importance = ROBOT_THOUGHT_IMPORTANCE if entity_id == ROBOT_ID else CRITTER_THOUGHT_IMPORTANCE
        store.add_memory(
            entity_id,
            create_memory(
                f"[thought] {result.thought}",
                MemoryType.OBSERVATION,
                [entity_id],
                importance=importance,
                timestamp=now,
            ),
        )
        store.show_thought(entity_id, result.thought, now + BUBBLE_SECONDS)
        if is_valid_action(result.action, kind):
            store.set_intent(entity_id, result.action)


__all__ = ["ThinkingLoop", "ThoughtGenerator", "think_interval"]
