"""
Dialogue orchestrator: who talks to whom, when, and what happens afterwards.

The orchestrator owns no world state. It reads the store to decide whether an
entity starts a conversation, builds the prompt context, and runs the text
generation as an ``asyncio.Task``. The task never touches the store directly:
on completion it posts a ``StatePatch`` that the simulation applies at the
start of the next tick.

Two paths exist:

Initiation (``check_initiation``)
    An entity past its spawn grace period, not already talking, scans for
    partners in its sensor radius while the global busy gate is free. Each
    candidate off cooldown is sampled once; the first hit takes the gate and
    a generation task starts. The completion writes memories for both sides,
    the conversation history, a speech bubble, the emotion event and the
    affinity change, then schedules the gate release.

Response (``check_response``)
    An entity with a queued incoming message answers it, and the answer is
    queued back to the original speaker as the next turn, up to
    ``MAX_EXCHANGE_TURNS`` lines. Critter replies to the robot are throttled
    by a per-critter turn counter; replies to another critter can turn into a
    quarrel when the message sounds hostile and stop after one round. The
    robot answers only while the busy gate is free and holds it until its
    reply delay has passed.

Failures (provider errors, missing keys, timeouts, empty output) are logged
and release the gate and the in-dialogue flag. No other effect applies.
"""

from __future__ import annotations

import asyncio
import random
import re
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .config import Config
from .emotions import (
    PERSONALITY_DESCRIPTIONS,
    apply_emotion_event,
    emotion_to_dialogue_context,
    personality_index_for,
)
from .lifecycle import lifecycle_to_dialogue_context
from .llm_calls import (
    DEFAULT_CRITTER_SYSTEM_PROMPT,
    DEFAULT_ROBOT_SYSTEM_PROMPT,
    MissingAPIKeyError,
    build_dialogue_system_prompt,
    generate_text,
    resolve_api_key,
)
from .logging_utils import log_error, log_info, log_llm
from .memory import create_memory, format_memories_for_prompt
from .needs import needs_to_dialogue_context
from .perception import build_env_context, get_nearby_elements, nearby_entities, theme_from_elements
from .relationships import dialogue_probability_multiplier, get_affinity, relationship_to_dialogue_context
from .schemas import EntityKind, IncomingMessage, LogCategory, MemoryType, Position
from .speech import SpeechQueue
from .store import ROBOT_ID, StatePatch, WorldStateStore


TextGenerator = Callable[..., Awaitable[str]]

ROBOT_SPAWN_GRACE = 5.0
CRITTER_SPAWN_GRACE = 15.0
ROBOT_SENSOR_RADIUS = 15.0
CRITTER_SENSOR_RADIUS = 8.0
ROBOT_PAIR_COOLDOWN = 90.0
CRITTER_PAIR_COOLDOWN = 120.0
ROBOT_BASE_PROBABILITY = 0.15
TARGET_ROBOT_PROBABILITY = 0.20
TARGET_CRITTER_PROBABILITY = 0.10
QUARREL_PROBABILITY = 0.05
ROBOT_MEMORY_K = 5
CRITTER_MEMORY_K = 7
ROBOT_RELEASE_DELAY = 6.0
CRITTER_RELEASE_DELAY = 3.0
BUBBLE_SECONDS = 5.0
STUCK_DIALOGUE_SECONDS = 10.0
THEME_RANGE = 15.0

FRIENDLY_DELTA = 0.05
QUARREL_DELTA = -0.15
NEGATIVE_DELTA = -0.05

ROBOT_REPLY_GAP = 60.0
ROBOT_TURN_RESET = 600.0
MAX_ROBOT_TURNS = 8
WRAP_UP_TURNS = 4
ROBOT_REPLY_RELEASE = 5.0
MAX_EXCHANGE_TURNS = 8
AGGRESSION_CHANCE = 0.2
QUARREL_RESET = 3

_REFUSAL = re.compile(r"\b(no|nope|never|stop|go away|leave me alone|don't|won't|shut up)\b")


def is_aggressive_message(text: str, roll: float) -> bool:
    """Exclamations, refusals, or the occasional bad mood make a reply hostile."""
    if "!" in text or "！" in text:
        return True
    if _REFUSAL.search(text.lower()):
        return True
    return roll < AGGRESSION_CHANCE


class DialogueOrchestrator:
    """Schedules conversations and turns their results into state patches.

    Args:
        store: World state (read directly, written only through patches)
        generator: ``generate_text``-compatible coroutine function. Defaults to
            the provider configured in ``store.settings``; with the default a
            missing cloud key disables dialogue instead of failing every tick.
        timeout: Seconds before a generation is abandoned
        rng: Optional random source
        speech: Optional speech queue fed with every completed line when
            ``settings.tts_enabled`` is on
    """

    def __init__(
        self,
        store: WorldStateStore,
        generator: Optional[TextGenerator] = None,
        timeout: Optional[float] = None,
        rng: Optional[random.Random] = None,
        speech: Optional[SpeechQueue] = None,
    ) -> None:
        self.store = store
        self.generator = generator
        self.timeout = Config.DIALOGUE_TIMEOUT_SECONDS if timeout is None else timeout
        self.rng = rng or random
        self.speech = speech
        self._tasks: Set[asyncio.Task] = set()
        self._pair_last: Dict[Tuple[str, str], float] = {}
        self._releases: Dict[str, float] = {}
        self._key_warning_shown = False

    # ------------------------------------------------------------------
    # Task bookkeeping
    # ------------------------------------------------------------------

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def _spawn(self, coro) -> bool:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            return False
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def drain(self) -> None:
        """Wait for every outstanding generation task."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _credentials(self) -> Optional[Tuple[str, Optional[str], Optional[str]]]:
        settings = self.store.settings
        if self.generator is not None:
            return settings.provider, settings.api_key, settings.model
        try:
            key = resolve_api_key(settings.provider, settings.api_key)
        except MissingAPIKeyError as exc:
            if not self._key_warning_shown:
                log_info(f"[Dialogue] Disabled: {exc}")
                self._key_warning_shown = True
            return None
        return settings.provider, key, settings.model

    async def _generate(self, credentials, system_prompt: str, prompt: str, history: List[dict]) -> str:
        provider, api_key, model = credentials
        generator = self.generator or generate_text
        return await generator(provider, api_key, prompt, system_prompt=system_prompt, history=history, model=model)

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def _base_prompt(self, entity_id: str) -> str:
        settings = self.store.settings
        if entity_id == ROBOT_ID:
            return settings.robot_system_prompt or DEFAULT_ROBOT_SYSTEM_PROMPT
        return settings.critter_system_prompt or DEFAULT_CRITTER_SYSTEM_PROMPT

    def system_prompt_for(self, speaker_id: str, target_id: str, now: float) -> str:
        store = self.store
        personality = None
        if store.kind_of(speaker_id) == EntityKind.CRITTER:
            personality = PERSONALITY_DESCRIPTIONS[personality_index_for(speaker_id.split("-", 1)[-1])]

        emotion = store.emotions.get(speaker_id)
        affinity = get_affinity(store.relationships, speaker_id, target_id)
        k = ROBOT_MEMORY_K if speaker_id == ROBOT_ID else CRITTER_MEMORY_K
        memories = store.memories.relevant(speaker_id, now, related_ids=[target_id], k=k)

        return build_dialogue_system_prompt(
            self._base_prompt(speaker_id),
            personality=personality,
            emotion_ctx=emotion_to_dialogue_context(emotion) if emotion is not None else None,
            relationship_ctx=relationship_to_dialogue_context(affinity, store.display_name(target_id)),
            memories=format_memories_for_prompt(memories) or None,
        )

    def situation_for(self, entity_id: str) -> List[str]:
        """Needs, health and surroundings lines shared by every prompt."""

        store = self.store
        lines: List[str] = []
        kind = store.kind_of(entity_id) or EntityKind.CRITTER
        needs = store.needs.get(entity_id)
        if needs is not None:
            needs_ctx = needs_to_dialogue_context(needs, kind)
            if needs_ctx:
                lines.append(f"You are {needs_ctx}.")
        lifecycle = store.lifecycles.get(entity_id)
        if lifecycle is not None:
            health_ctx = lifecycle_to_dialogue_context(lifecycle)
            if health_ctx:
                lines.append(health_ctx)
        position = store.positions.get(entity_id, Position())
        env = store.environment
        lines.append(build_env_context(env.time, env.weather, position.x, position.z, self.rng))
        return lines

    def _history_for(self, speaker_id: str, target_id: str) -> List[dict]:
        return [
            {"role": "assistant" if record.speaker_id == speaker_id else "user", "content": record.text}
            for record in self.store.conversation_history(speaker_id, target_id)
        ]

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    def _in_grace(self, entity_id: str, now: float) -> bool:
        spawned = self.store.spawned_at.get(entity_id)
        if spawned is None:
            return False
        grace = ROBOT_SPAWN_GRACE if entity_id == ROBOT_ID else CRITTER_SPAWN_GRACE
        return now - spawned < grace

    def _conversational(self, entity_id: str) -> bool:
        return self.store.is_alive(entity_id) and self.store.kind_of(entity_id) in (EntityKind.ROBOT, EntityKind.CRITTER)

    def _probability(self, speaker_id: str, target_id: str) -> float:
        if speaker_id == ROBOT_ID:
            base = ROBOT_BASE_PROBABILITY
        elif target_id == ROBOT_ID:
            base = TARGET_ROBOT_PROBABILITY
        else:
            base = TARGET_CRITTER_PROBABILITY
        affinity = get_affinity(self.store.relationships, speaker_id, target_id)
        emotion = self.store.emotions.get(speaker_id)
        curiosity = emotion.curiosity if emotion is not None else 0.0
        return base * dialogue_probability_multiplier(affinity) * (1.0 + curiosity * 0.5)

    def pick_partner(self, entity_id: str, now: float, positions: Dict[str, Position]) -> Optional[str]:
        """Sample each candidate in range once; return the first that triggers."""

        radius = ROBOT_SENSOR_RADIUS if entity_id == ROBOT_ID else CRITTER_SENSOR_RADIUS
        cooldown = ROBOT_PAIR_COOLDOWN if entity_id == ROBOT_ID else CRITTER_PAIR_COOLDOWN
        candidates = [eid for eid in self.store.living_entity_ids() if self._conversational(eid)]

        for other_id, _ in nearby_entities(positions, entity_id, radius, candidates=candidates):
            if self.store.is_in_dialogue(other_id):
                continue
            last = self._pair_last.get((entity_id, other_id))
            if last is not None and now - last <= cooldown:
                continue
            if self.rng.random() < self._probability(entity_id, other_id):
                return other_id
        return None

    def check_initiation(self, entity_id: str, now: float, positions: Dict[str, Position]) -> bool:
        """Maybe start a conversation; ``True`` when a generation task started."""

        store = self.store
        if not self._conversational(entity_id) or store.is_in_dialogue(entity_id):
            return False
        if self._in_grace(entity_id, now) or store.is_busy(now):
            return False

        target_id = self.pick_partner(entity_id, now, positions)
        if target_id is None:
            return False

        credentials = self._credentials()
        if credentials is None:
            return False

        if not store.acquire_busy(now):
            return False
        self._pair_last[(entity_id, target_id)] = now

        quarrel = (
            store.kind_of(entity_id) == EntityKind.CRITTER
            and store.kind_of(target_id) == EntityKind.CRITTER
            and self.rng.random() < QUARREL_PROBABILITY
        )
        store.set_conversation(entity_id, store.conversation(entity_id).model_copy(update={"turn_count": 0}))
        store.set_in_dialogue(entity_id, True, now)

        system_prompt = self.system_prompt_for(entity_id, target_id, now)
        prompt = self._initiation_prompt(entity_id, target_id, quarrel, positions)
        history = self._history_for(entity_id, target_id)

        started = self._spawn(
            self._run_initiation(credentials, entity_id, target_id, system_prompt, prompt, history, quarrel)
        )
        if not started:
            store.release_busy()
            store.set_in_dialogue(entity_id, False)
            return False
        log_llm(f"[Dialogue] {store.display_name(entity_id)} -> {store.display_name(target_id)}")
        return True

    def _initiation_prompt(
        self,
        speaker_id: str,
        target_id: str,
        quarrel: bool,
        positions: Dict[str, Position],
    ) -> str:
        position = positions.get(speaker_id, Position())
        elements = get_nearby_elements(position.x, position.z, THEME_RANGE, self.store.environment.time)
        theme = theme_from_elements(elements, self.rng)
        lines = self.situation_for(speaker_id)
        lines.append(f"You run into {self.store.display_name(target_id)}. Say something to them about {theme}.")
        if quarrel:
            lines.append("You are annoyed with them today; pick a small argument.")
        return "\n".join(lines)

    async def _run_initiation(
        self,
        credentials,
        speaker_id: str,
        target_id: str,
        system_prompt: str,
        prompt: str,
        history: Sequence[dict],
        quarrel: bool,
    ) -> None:
        label = f"{speaker_id} -> {target_id}"
        try:
            text = await asyncio.wait_for(
                self._generate(credentials, system_prompt, prompt, list(history)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            log_error(f"[Dialogue] {label} timed out after {self.timeout:.0f}s")
            self._post_initiation_failure(speaker_id, label)
            return
        except Exception as exc:
            log_error(f"[Dialogue] {label} failed: {exc}")
            self._post_initiation_failure(speaker_id, label)
            return

        text = (text or "").strip()
        if not text:
            log_error(f"[Dialogue] {label} returned no text")
            self._post_initiation_failure(speaker_id, label)
            return

        self.store.post_patch(
            StatePatch(
                f"dialogue {label}",
                lambda store: self._apply_initiation(store, speaker_id, target_id, text, quarrel),
            )
        )

    def _post_initiation_failure(self, speaker_id: str, label: str) -> None:
        def _release(store: WorldStateStore) -> None:
            store.release_busy()
            store.set_in_dialogue(speaker_id, False)
            self._releases.pop(speaker_id, None)

        self.store.post_patch(StatePatch(f"dialogue failed {label}", _release))

    def _apply_initiation(
        self,
        store: WorldStateStore,
        speaker_id: str,
        target_id: str,
        text: str,
        quarrel: bool,
    ) -> None:
        now = store.clock
        release_delay = ROBOT_RELEASE_DELAY if speaker_id == ROBOT_ID else CRITTER_RELEASE_DELAY
        store.release_busy(at=now + release_delay)
        if not store.is_alive(speaker_id):
            store.set_in_dialogue(speaker_id, False)
            return

        speaker_name = store.display_name(speaker_id)
        target_name = store.display_name(target_id)
        memory_type = MemoryType.QUARREL if quarrel else MemoryType.DIALOGUE

        store.add_memory(
            speaker_id,
            create_memory(f'I said to {target_name}: "{text}"', memory_type, [target_id], timestamp=now),
        )
        if store.is_alive(target_id):
            store.add_memory(
                target_id,
                create_memory(f'{speaker_name} said to me: "{text}"', memory_type, [speaker_id], timestamp=now),
            )

        store.add_dialogue(speaker_id, target_id, text)
        store.show_dialogue(speaker_id, text, target_id, now + BUBBLE_SECONDS)
        store.adjust_relationship(speaker_id, target_id, QUARREL_DELTA if quarrel else FRIENDLY_DELTA)

        emotion = store.emotions.get(speaker_id)
        if emotion is not None:
            store.set_emotion(speaker_id, apply_emotion_event(emotion, "quarrel" if quarrel else "positive_dialogue"))

        verb = "argued with" if quarrel else "talked to"
        store.log_activity(
            LogCategory.DIALOGUE,
            f'{speaker_name} {verb} {target_name}: "{text}"',
            entity_id=speaker_id,
            related_entities=[target_id],
        )

        if self._conversational(target_id):
            store.queue_message(IncomingMessage(speaker_id=speaker_id, target_id=target_id, text=text, received_at=now))

        self._releases[speaker_id] = now + release_delay
        self._speak(store, speaker_id, text)

    # ------------------------------------------------------------------
    # Response
    # ------------------------------------------------------------------

    def check_response(self, entity_id: str, now: float) -> bool:
        """Answer the oldest queued message, if the turn rules allow it."""

        store = self.store
        if not self._conversational(entity_id) or store.is_in_dialogue(entity_id):
            return False
        if entity_id == ROBOT_ID:
            return self._check_robot_response(now)
        message = store.pop_message(entity_id)
        if message is None:
            return False

        conversation = store.conversation(entity_id)
        if message.speaker_id == ROBOT_ID:
            last_end = conversation.last_conversation_end
            if last_end is not None and now - last_end < ROBOT_REPLY_GAP:
                return False
            turns = conversation.turn_count
            if last_end is None or now - last_end > ROBOT_TURN_RESET:
                turns = 0
            if turns > MAX_ROBOT_TURNS:
                store.set_conversation(entity_id, conversation.model_copy(update={"turn_count": turns}))
                return False
            turns += 1
            store.set_conversation(entity_id, conversation.model_copy(update={"turn_count": turns, "last_turn_at": now}))
            aggressive = False
            wrap_up = turns >= WRAP_UP_TURNS
        else:
            if conversation.quarrel_count >= 1:
                store.set_conversation(entity_id, conversation.model_copy(update={"quarrel_count": 0}))
                return False
            store.set_conversation(
                entity_id, conversation.model_copy(update={"quarrel_count": conversation.quarrel_count + 1})
            )
            aggressive = is_aggressive_message(message.text, self.rng.random())
            wrap_up = message.turn >= WRAP_UP_TURNS

        credentials = self._credentials()
        if credentials is None:
            return False
        return self._start_reply(credentials, entity_id, message, aggressive, wrap_up, now)

    def _check_robot_response(self, now: float) -> bool:
        store = self.store
        if store.robot_status.malfunctioning or not store.incoming_messages.get(ROBOT_ID):
            return False
        # Unlike critters the robot waits for the gate; the message stays queued.
        if store.is_busy(now):
            return False
        credentials = self._credentials()
        if credentials is None:
            return False

        message = store.pop_message(ROBOT_ID)
        if not store.is_alive(message.speaker_id):
            return False
        store.acquire_busy(now)
        if not self._start_reply(credentials, ROBOT_ID, message, False, message.turn >= WRAP_UP_TURNS, now):
            store.release_busy()
            return False
        return True

    def _start_reply(
        self,
        credentials,
        entity_id: str,
        message: IncomingMessage,
        aggressive: bool,
        wrap_up: bool,
        now: float,
    ) -> bool:
        store = self.store
        store.set_in_dialogue(entity_id, True, now)
        system_prompt = self.system_prompt_for(entity_id, message.speaker_id, now)
        prompt = self._reply_prompt(entity_id, message, aggressive, wrap_up)
        history = self._history_for(entity_id, message.speaker_id)

        reply = self._run_reply(credentials, entity_id, message, system_prompt, prompt, history, aggressive)
        if not self._spawn(reply):
            store.set_in_dialogue(entity_id, False)
            return False
        log_llm(f"[Dialogue] {store.display_name(entity_id)} replies to {store.display_name(message.speaker_id)}")
        return True

    def _reply_prompt(self, entity_id: str, message: IncomingMessage, aggressive: bool, wrap_up: bool) -> str:
        lines = self.situation_for(entity_id)
        lines.append(f'{self.store.display_name(message.speaker_id)} said to you: "{message.text}"')
        if aggressive:
            lines.append("That rubbed you the wrong way. Answer sharply.")
        else:
            lines.append("Answer them.")
        if wrap_up:
            lines.append("You have talked for a while; start wrapping the conversation up.")
        return "\n".join(lines)

    async def _run_reply(
        self,
        credentials,
        entity_id: str,
        message: IncomingMessage,
        system_prompt: str,
        prompt: str,
        history: Sequence[dict],
        aggressive: bool,
    ) -> None:
        label = f"{entity_id} reply to {message.speaker_id}"
        try:
            text = await asyncio.wait_for(
                self._generate(credentials, system_prompt, prompt, list(history)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            log_error(f"[Dialogue] {label} timed out after {self.timeout:.0f}s")
            self._post_reply_failure(entity_id, message.speaker_id, label)
            return
        except Exception as exc:
            log_error(f"[Dialogue] {label} failed: {exc}")
            self._post_reply_failure(entity_id, message.speaker_id, label)
            return

        text = (text or "").strip()
        if not text:
            log_error(f"[Dialogue] {label} returned no text")
            self._post_reply_failure(entity_id, message.speaker_id, label)
            return

        self.store.post_patch(
            StatePatch(
                f"dialogue {label}",
                lambda store: self._apply_reply(store, entity_id, message, text, aggressive),
            )
        )

    def _post_reply_failure(self, entity_id: str, speaker_id: str, label: str) -> None:
        def _release(store: WorldStateStore) -> None:
            store.set_in_dialogue(entity_id, False)
            self._releases.pop(entity_id, None)
            if entity_id == ROBOT_ID:
                store.release_busy()
            elif speaker_id == ROBOT_ID and store.is_alive(entity_id):
                conversation = store.conversation(entity_id)
                store.set_conversation(entity_id, conversation.model_copy(update={"last_conversation_end": store.clock}))

        self.store.post_patch(StatePatch(f"dialogue failed {label}", _release))

    def _apply_reply(
        self,
        store: WorldStateStore,
        entity_id: str,
        message: IncomingMessage,
        text: str,
        aggressive: bool,
    ) -> None:
        now = store.clock
        if entity_id == ROBOT_ID:
            store.release_busy(at=now + ROBOT_REPLY_RELEASE)
        if not store.is_alive(entity_id):
            store.set_in_dialogue(entity_id, False)
            return

        speaker_id = message.speaker_id
        speaker_name = store.display_name(speaker_id)
        name = store.display_name(entity_id)
        store.add_dialogue(entity_id, speaker_id, text)
        store.show_dialogue(entity_id, text, speaker_id, now + BUBBLE_SECONDS)

        conversation = store.conversation(entity_id)
        emotion = store.emotions.get(entity_id)

        if ROBOT_ID in (entity_id, speaker_id):
            store.add_memory(
                entity_id,
                create_memory(
                    f'{speaker_name} said "{message.text}" and I answered "{text}"',
                    MemoryType.DIALOGUE,
                    [speaker_id],
                    timestamp=now,
                ),
            )
            if emotion is not None:
                store.set_emotion(entity_id, apply_emotion_event(emotion, "positive_dialogue"))
            store.adjust_relationship(entity_id, speaker_id, FRIENDLY_DELTA)
            release_at = now + ROBOT_REPLY_RELEASE
            if entity_id != ROBOT_ID:
                store.set_conversation(entity_id, conversation.model_copy(update={"last_conversation_end": release_at}))
        else:
            memory_type = MemoryType.QUARREL if aggressive else MemoryType.DIALOGUE
            store.add_memory(
                entity_id,
                create_memory(f'I answered {speaker_name}: "{text}"', memory_type, [speaker_id], timestamp=now),
            )
            if emotion is not None:
                event = "quarrel" if aggressive else "negative_dialogue"
                store.set_emotion(entity_id, apply_emotion_event(emotion, event))
            store.adjust_relationship(entity_id, speaker_id, QUARREL_DELTA if aggressive else NEGATIVE_DELTA)
            release_at = now + CRITTER_RELEASE_DELAY
            if conversation.quarrel_count >= QUARREL_RESET:
                store.set_conversation(entity_id, conversation.model_copy(update={"quarrel_count": 0}))

        store.log_activity(
            LogCategory.DIALOGUE,
            f'{name} answered {speaker_name}: "{text}"',
            entity_id=entity_id,
            related_entities=[speaker_id],
        )

        if self._conversational(speaker_id):
            store.add_memory(
                speaker_id,
                create_memory(f'{name} answered me: "{text}"', MemoryType.DIALOGUE, [entity_id], timestamp=now),
            )
        next_turn = message.turn + 1
        if next_turn <= MAX_EXCHANGE_TURNS and self._conversational(speaker_id):
            store.queue_message(
                IncomingMessage(
                    speaker_id=entity_id, target_id=speaker_id, text=text, received_at=now, turn=next_turn
                )
            )

        self._releases[entity_id] = release_at
        self._speak(store, entity_id, text)

    # ------------------------------------------------------------------
    # Per-tick housekeeping
    # ------------------------------------------------------------------

    def _speak(self, store: WorldStateStore, speaker_id: str, text: str) -> None:
        if self.speech is not None and store.settings.tts_enabled:
            self.speech.speak(text, is_robot_voice=speaker_id == ROBOT_ID)

    def update(self, now: float) -> List[str]:
        """Run scheduled in-dialogue releases and the stuck failsafe.

        Returns the ids whose flag was force-cleared by the failsafe.
        """

        for entity_id, release_at in list(self._releases.items()):
            if now >= release_at:
                del self._releases[entity_id]
                self.store.set_in_dialogue(entity_id, False)
        return self.release_stuck(now)

    def release_stuck(self, now: float) -> List[str]:
        # A scheduled release means the generation finished; the flag is not stuck.
        stuck = [
            entity_id
            for entity_id, since in self.store.in_dialogue.items()
            if now - since > STUCK_DIALOGUE_SECONDS and entity_id not in self._releases
        ]
        for entity_id in stuck:
            self.store.set_in_dialogue(entity_id, False)
            self._releases.pop(entity_id, None)
            log_error(f"[Dialogue] {entity_id} was stuck in dialogue; flag cleared")
        return stuck

    def prune(self, living: Iterable[str]) -> None:
        """Forget pair cooldowns and releases of entities no longer alive."""

        alive = set(living)
        self._pair_last = {
            pair: at for pair, at in self._pair_last.items() if pair[0] in alive and pair[1] in alive
        }
        for entity_id in [eid for eid in self._releases if eid not in alive]:
            del self._releases[entity_id]


__all__ = [
    "DialogueOrchestrator",
    "TextGenerator",
    "is_aggressive_message",
]
