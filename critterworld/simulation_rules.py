"""
SimulationRules: deterministic per-entity physics for the critter world.

Everything here is calculated, never generated. Each tick the simulation hands
every living entity to ``apply_entity_tick`` in a fixed order:

    needs -> lifecycle -> emotion -> activity

Wild animals also run their flee/chase/attack/wander state machine right
after needs; wolf bites go through ``apply_health_damage`` like any injury.

Needs and emotion decay run on the raw tick delta. Lifecycle, need-driven mood
events, eating, reproduction and the robot's element observations run on a
fixed one-second step per entity, so their per-step probabilities do not depend
on the frame rate.

Dialogue and thinking are not rules: they are scheduled afterwards by the
simulation driver because they involve generative calls.

Design principle: if it can be calculated, calculate it (don't ask the LLM).
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .activities import is_valid_action, select_next_activity, should_switch_activity
from .buildings import building_effect
from .emotions import apply_emotion_event, apply_emotion_influence, decay_emotion
from .environment.weather import is_night
from .lifecycle import (
    POST_REPRODUCTION_COOLDOWN,
    apply_health_damage,
    check_reproduction,
    mutate_color,
    tick_lifecycle,
)
from .logging_utils import log_deterministic, log_success
from .memory import create_memory
from .needs import compute_desires, decay_needs, needs_to_emotion_influence, satisfy_need
from .perception import get_nearby_elements, nearby_entities
from .resources import CRITTER_FOOD_TYPES, ROBOT_ENERGY_TYPES, attempt_gather, consume, get_nearby
from .schemas import (
    ActivityKind,
    EntityKind,
    HealthStatus,
    LogCategory,
    LogImportance,
    MemoryType,
    NeedKind,
    Position,
)
from .store import ROBOT_ID, WorldStateStore
from .survival import charge_battery, drain_battery, solar_available, update_body_temperature
from .wildlife import WILD_ANIMALS, WildAnimalMind, decide_wild_behavior, move_wild_animal, species_of


LIFECYCLE_STEP = 1.0
ACTIVITY_SCAN_RADIUS = 30.0
BIRTH_WITNESS_RADIUS = 20.0
OBSERVATION_RADIUS = 8.0
FEED_REACH = 1.5
FEED_HUNGER_CEILING = 0.95
ROBOT_CHARGE_REACH = 2.0
SOCIAL_REACH = 5.0

HUNGER_LOW = 0.25
HUNGER_LOW_INTENSITY = 0.3
SICK_INTENSITY = 0.2
BIRTH_INTENSITY = 0.5
DEATH_INTENSITY = 0.5
NEEDS_INFLUENCE_SCALE = 0.1

REST_RECOVERY = 0.02  # energy per second
SOCIAL_RECOVERY = 0.01  # social per second
SHELTER_COMFORT = 0.01  # comfort per second
GATHER_INJURY = 0.05
ATTACK_WITNESS_RADIUS = 30.0

MOVING_ACTIVITIES = {
    ActivityKind.EXPLORE,
    ActivityKind.FORAGE,
    ActivityKind.SOCIALIZE,
    ActivityKind.FLEE,
    ActivityKind.PATROL,
    ActivityKind.SEEK_RESOURCE,
}
START_EVENTS = {
    ActivityKind.REST: "resting",
    ActivityKind.EXPLORE: "exploring",
}

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    if value <= 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


class SimulationRules(ABC):
    """Abstract base class for the deterministic physics of a world.

    Subclasses are dependency-injected into ``Simulation`` so the same driver
    can run different physics (tests use trimmed-down rules).
    """

    @abstractmethod
    def apply_entity_tick(
        self,
        store: WorldStateStore,
        entity_id: str,
        now: float,
        delta_seconds: float,
        positions: Dict[str, Position],
    ) -> None:
        """Apply one tick of physics to one living entity.

        Args:
            store: World state, mutated in place through its named mutators
            entity_id: Entity being updated
            now: Simulation clock in seconds
            delta_seconds: Time since the previous tick
            positions: Positions snapshot taken at the start of the tick
        """

    def validate_action(self, store: WorldStateStore, entity_id: str, action: ActivityKind) -> bool:
        """Whether an entity may take ``action``. Default: the per-kind whitelist."""

        kind = store.kind_of(entity_id)
        return kind is not None and is_valid_action(action, kind)

    def on_simulation_start(self, store: WorldStateStore) -> None:
        """Hook called once before the first tick."""

    def on_simulation_end(self, store: WorldStateStore) -> None:
        """Hook called once after the final tick."""


class CritterWorldRules(SimulationRules):
    """The default physics: needs, lifecycle, mood, activities, birth and death."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random
        self._accumulated: Dict[str, float] = {}
        self._wild: Dict[str, WildAnimalMind] = {}

    def apply_entity_tick(
        self,
        store: WorldStateStore,
        entity_id: str,
        now: float,
        delta_seconds: float,
        positions: Dict[str, Position],
    ) -> None:
        kind = store.kind_of(entity_id)
        if kind is None or not store.is_alive(entity_id):
            return

        dt = max(0.0, delta_seconds)
        self._update_needs(store, entity_id, kind, now, dt, positions)
        if kind == EntityKind.WILD_ANIMAL:
            self._update_wildlife(store, entity_id, now, dt, positions)

        steps = self._fixed_steps(entity_id, dt)
        for _ in range(steps):
            if kind == EntityKind.CRITTER and not self._step_lifecycle(store, entity_id, now, positions):
                self._accumulated.pop(entity_id, None)
                return
            self._step_mood(store, entity_id, kind)
            self._step_feeding(store, entity_id, kind, now)
            if kind == EntityKind.ROBOT:
                self._observe_elements(store, entity_id, now)

        emotion = store.emotions.get(entity_id)
        if emotion is not None:
            store.set_emotion(entity_id, decay_emotion(emotion, dt))

        self._update_activity(store, entity_id, kind, now, positions)

    def _fixed_steps(self, entity_id: str, dt: float) -> int:
        total = self._accumulated.get(entity_id, 0.0) + dt
        steps = int(total // LIFECYCLE_STEP)
        self._accumulated[entity_id] = total - steps * LIFECYCLE_STEP
        return steps

    # ------------------------------------------------------------------
    # Needs and survival
    # ------------------------------------------------------------------

    def _update_needs(
        self,
        store: WorldStateStore,
        entity_id: str,
        kind: EntityKind,
        now: float,
        dt: float,
        positions: Dict[str, Position],
    ) -> None:
        env = store.environment
        needs = store.needs.get(entity_id)
        if needs is None:
            return
        needs = decay_needs(needs, dt, kind, is_night(env.time))

        activity = store.activities.get(entity_id)
        current = activity.current if activity is not None else ActivityKind.IDLE
        position = positions.get(entity_id)

        if current == ActivityKind.REST:
            needs = satisfy_need(needs, NeedKind.ENERGY, REST_RECOVERY * dt)
        if current == ActivityKind.SOCIALIZE and activity is not None and activity.target_entity_id:
            target = positions.get(activity.target_entity_id)
            if position is not None and target is not None and position.distance_to(target) < SOCIAL_REACH:
                needs = satisfy_need(needs, NeedKind.SOCIAL, SOCIAL_RECOVERY * dt)
        if position is not None and building_effect(store.buildings, position, "shelter_protection") > 0:
            needs = satisfy_need(needs, NeedKind.COMFORT, SHELTER_COMFORT * dt)

        if kind == EntityKind.ROBOT:
            needs = self._update_robot_status(store, needs, current, position, dt)

        store.set_needs(entity_id, needs)

    def _update_robot_status(self, store: WorldStateStore, needs, current: ActivityKind, position, dt: float):
        env = store.environment
        status = store.robot_status
        was_malfunctioning = status.malfunctioning

        status = drain_battery(status, dt, "moving" if current in MOVING_ACTIVITIES else "idle")
        if solar_available(env.weather, env.time):
            status = charge_battery(status, dt, "solar")
        if position is not None:
            charging_rate = building_effect(store.buildings, position, "charge_rate")
            near_node = get_nearby(
                store.resources, position.x, position.z, ROBOT_CHARGE_REACH, type_filter=ROBOT_ENERGY_TYPES
            )
            if near_node or charging_rate > 0:
                status = charge_battery(status, dt, "energy_node")

        sheltered = position is not None and building_effect(store.buildings, position, "shelter_protection") > 0
        status = update_body_temperature(status, env.temperature, dt, sheltered)
        store.set_robot_status(status)

        if status.malfunctioning and not was_malfunctioning:
            store.log_activity(LogCategory.WARNING, "The robot's battery is empty", ROBOT_ID, LogImportance.CRITICAL)
            log_deterministic("[Robot] Battery depleted, shutting down")

        # The robot's energy need mirrors its battery.
        return needs.model_copy(update={"energy": status.battery / 100.0})

    def _step_feeding(self, store: WorldStateStore, entity_id: str, kind: EntityKind, now: float) -> None:
        if kind != EntityKind.CRITTER:
            return
        activity = store.activities.get(entity_id)
        if activity is None or activity.current not in (ActivityKind.FORAGE, ActivityKind.SEEK_RESOURCE):
            return
        needs = store.needs.get(entity_id)
        position = store.positions.get(entity_id)
        if needs is None or position is None or needs.hunger >= FEED_HUNGER_CEILING:
            return

        nodes = get_nearby(store.resources, position.x, position.z, FEED_REACH, type_filter=CRITTER_FOOD_TYPES)
        if not nodes:
            return
        node, _ = nodes[0]
        result = attempt_gather(node, rng=self.rng)
        if not result.success:
            return

        store.set_resources(consume(store.resources, node.id, result.amount))
        store.set_needs(entity_id, satisfy_need(needs, NeedKind.HUNGER, result.amount * result.quality))
        if result.damaged:
            lifecycle = store.lifecycles.get(entity_id)
            if lifecycle is not None:
                store.set_lifecycle(entity_id, apply_health_damage(lifecycle, GATHER_INJURY))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _step_lifecycle(
        self,
        store: WorldStateStore,
        entity_id: str,
        now: float,
        positions: Dict[str, Position],
    ) -> bool:
        """One lifecycle second; returns ``False`` when the critter died."""

        lifecycle = store.lifecycles.get(entity_id)
        needs = store.needs.get(entity_id)
        if lifecycle is None or needs is None:
            return True

        before = lifecycle.health_status
        lifecycle = tick_lifecycle(lifecycle, LIFECYCLE_STEP, needs, self.rng)
        store.set_lifecycle(entity_id, lifecycle)

        if lifecycle.health_status == HealthStatus.DEAD:
            self.handle_death(store, entity_id, now, positions)
            return False
        if lifecycle.health_status == HealthStatus.SICK and before != HealthStatus.SICK:
            store.log_activity(LogCategory.EVENT, f"{store.display_name(entity_id)} fell ill", entity_id)
            log_deterministic(f"[Lifecycle] {entity_id} is sick")

        alive = store.alive_count(EntityKind.CRITTER)
        if alive < store.population_cap and check_reproduction(lifecycle, needs, alive, self.rng):
            self.reproduce(store, entity_id, now, positions)
        return True

    def reproduce(
        self,
        store: WorldStateStore,
        parent_id: str,
        now: float,
        positions: Dict[str, Position],
    ) -> Optional[str]:
        """Create a child beside ``parent_id``; ``None`` when the cap refuses it."""

        parent = store.registry[parent_id]
        origin = positions.get(parent_id) or store.positions.get(parent_id, Position())
        child_id = f"Critter-{to_base36(int(now * 1000))}"
        while child_id in store.registry:
            child_id += self.rng.choice(_BASE36)

        position = Position(
            x=origin.x + (self.rng.random() - 0.5) * 2,
            y=origin.y,
            z=origin.z + (self.rng.random() - 0.5) * 2,
        )
        color = mutate_color(parent.color, self.rng)
        if not store.add_critter(child_id, color, position, generation=parent.generation + 1, now=now, rng=self.rng):
            return None

        lifecycle = store.lifecycles[parent_id]
        store.set_lifecycle(parent_id, lifecycle.model_copy(update={"reproduction_cooldown": POST_REPRODUCTION_COOLDOWN}))

        parent_name = store.display_name(parent_id)
        witnesses = nearby_entities(positions, parent_id, BIRTH_WITNESS_RADIUS, candidates=store.living_entity_ids())
        for witness_id, _ in witnesses:
            if store.kind_of(witness_id) == EntityKind.WILD_ANIMAL:
                continue
            store.add_memory(
                witness_id,
                create_memory(
                    f"{child_id} was born to {parent_name}", MemoryType.EVENT, [child_id, parent_id], timestamp=now
                ),
            )
            emotion = store.emotions.get(witness_id)
            if emotion is not None:
                store.set_emotion(witness_id, apply_emotion_event(emotion, "new_birth", BIRTH_INTENSITY))
        store.add_memory(
            parent_id,
            create_memory(f"My child {child_id} was born", MemoryType.EVENT, [child_id], importance=0.9, timestamp=now),
        )

        store.log_activity(
            LogCategory.EVENT,
            f"{child_id} was born to {parent_name} (generation {parent.generation + 1})",
            entity_id=child_id,
            importance=LogImportance.HIGH,
            related_entities=[parent_id],
        )
        store.record_timeline("birth", f"{child_id} was born to {parent_name}", importance=0.6)
        log_success(f"[Lifecycle] {child_id} born to {parent_id}")
        return child_id

    def handle_death(
        self,
        store: WorldStateStore,
        entity_id: str,
        now: float,
        positions: Dict[str, Position],
        cause: Optional[str] = None,
    ) -> None:
        name = store.display_name(entity_id)
        lifecycle = store.lifecycles.get(entity_id)
        if cause is None:
            cause = "old age" if lifecycle is not None and lifecycle.age >= lifecycle.max_age else "poor health"
        self._accumulated.pop(entity_id, None)

        store.remove_critter(entity_id)
        for survivor_id in store.living_entity_ids():
            if store.kind_of(survivor_id) == EntityKind.WILD_ANIMAL:
                continue
            store.add_memory(
                survivor_id,
                create_memory(f"{name} died of {cause}", MemoryType.EVENT, [entity_id], importance=0.8, timestamp=now),
            )
            emotion = store.emotions.get(survivor_id)
            if emotion is not None:
                store.set_emotion(survivor_id, apply_emotion_event(emotion, "entity_died", DEATH_INTENSITY))

        store.log_activity(LogCategory.DEATH, f"{name} died of {cause}", entity_id, LogImportance.HIGH)
        store.record_timeline("death", f"{name} died of {cause}", importance=0.7)
        log_deterministic(f"[Lifecycle] {entity_id} died ({cause})")

    # ------------------------------------------------------------------
    # Wildlife
    # ------------------------------------------------------------------

    def _update_wildlife(
        self,
        store: WorldStateStore,
        entity_id: str,
        now: float,
        dt: float,
        positions: Dict[str, Position],
    ) -> None:
        species = species_of(entity_id)
        origin = store.positions.get(entity_id)
        if species is None or origin is None:
            return
        profile = WILD_ANIMALS[species]

        mind = self._wild.get(entity_id)
        if mind is None:
            mind = WildAnimalMind(home=store.registry[entity_id].spawn_position.model_copy())
        mind, struck = decide_wild_behavior(mind, profile, entity_id, origin, positions, now, self.rng)
        mind, moved = move_wild_animal(mind, profile, origin, dt, now, self.rng)
        self._wild[entity_id] = mind

        if moved is not origin:
            store.set_position(entity_id, moved)
        if struck is not None:
            self.wild_attack(store, entity_id, struck, profile.attack_damage, now, positions)

    def wild_attack(
        self,
        store: WorldStateStore,
        attacker_id: str,
        victim_id: str,
        damage: float,
        now: float,
        positions: Dict[str, Position],
    ) -> None:
        """Apply one bite: health damage, memories, and death when it is fatal."""

        lifecycle = store.lifecycles.get(victim_id)
        if lifecycle is None or not store.is_alive(victim_id):
            return
        lifecycle = apply_health_damage(lifecycle, damage)
        store.set_lifecycle(victim_id, lifecycle)

        attacker = store.display_name(attacker_id).lower()
        victim = store.display_name(victim_id)
        store.add_memory(
            victim_id,
            create_memory(
                f"A {attacker} attacked me",
                MemoryType.EVENT,
                [attacker_id, victim_id],
                importance=0.9,
                emotional_weight=0.8,
                timestamp=now,
            ),
        )
        emotion = store.emotions.get(victim_id)
        if emotion is not None:
            store.set_emotion(victim_id, apply_emotion_event(emotion, "encounter_enemy"))

        robot_position = positions.get(ROBOT_ID)
        attacker_position = positions.get(attacker_id)
        if robot_position is not None and attacker_position is not None:
            if robot_position.distance_to(attacker_position) < ATTACK_WITNESS_RADIUS:
                store.add_memory(
                    ROBOT_ID,
                    create_memory(
                        f"A {attacker} is attacking {victim}",
                        MemoryType.EVENT,
                        [attacker_id, victim_id],
                        importance=0.7,
                        timestamp=now,
                    ),
                )

        store.log_activity(
            LogCategory.COMBAT,
            f"A {attacker} attacked {victim}",
            entity_id=victim_id,
            importance=LogImportance.HIGH,
            related_entities=[attacker_id],
        )
        log_deterministic(f"[Wildlife] {attacker_id} bit {victim_id} (health {lifecycle.health:.2f})")

        if lifecycle.health_status == HealthStatus.DEAD:
            self.handle_death(store, victim_id, now, positions, cause=f"a {attacker} attack")

    # ------------------------------------------------------------------
    # Mood and activity
    # ------------------------------------------------------------------

    def _step_mood(self, store: WorldStateStore, entity_id: str, kind: EntityKind) -> None:
        emotion = store.emotions.get(entity_id)
        needs = store.needs.get(entity_id)
        if emotion is None or needs is None:
            return

        if kind != EntityKind.ROBOT and needs.hunger < HUNGER_LOW:
            emotion = apply_emotion_event(emotion, "hunger_low", HUNGER_LOW_INTENSITY)
        lifecycle = store.lifecycles.get(entity_id)
        if lifecycle is not None and lifecycle.health_status == HealthStatus.SICK:
            emotion = apply_emotion_event(emotion, "sick", SICK_INTENSITY)

        influence = needs_to_emotion_influence(needs, kind)
        emotion = apply_emotion_influence(
            emotion, {affect: delta * NEEDS_INFLUENCE_SCALE for affect, delta in influence.items()}
        )
        store.set_emotion(entity_id, emotion)

    def _update_activity(
        self,
        store: WorldStateStore,
        entity_id: str,
        kind: EntityKind,
        now: float,
        positions: Dict[str, Position],
    ) -> None:
        intent = store.pop_intent(entity_id)
        if intent is not None and not self.validate_action(store, entity_id, intent):
            intent = None
        if intent is None and not should_switch_activity(store.activities.get(entity_id), now):
            return

        emotion = store.emotions.get(entity_id)
        needs = store.needs.get(entity_id)
        if emotion is None or needs is None:
            return

        env = store.environment
        nearby = nearby_entities(positions, entity_id, ACTIVITY_SCAN_RADIUS, candidates=store.living_entity_ids())
        activity = select_next_activity(
            emotion,
            env.time,
            env.weather,
            store.relationships,
            entity_id,
            nearby,
            compute_desires(needs, kind),
            ai_suggestion=intent,
            now=now,
            rng=self.rng,
            resources=store.resources,
            position=positions.get(entity_id),
            kind=kind,
        )
        store.set_activity(entity_id, activity)

        event = START_EVENTS.get(activity.current)
        if event is not None:
            store.set_emotion(entity_id, apply_emotion_event(store.emotions[entity_id], event))

    def _observe_elements(self, store: WorldStateStore, entity_id: str, now: float) -> List[str]:
        position = store.positions.get(entity_id)
        if position is None:
            return []
        seen: List[str] = []
        for element in get_nearby_elements(position.x, position.z, OBSERVATION_RADIUS, store.environment.time):
            if not store.mark_observed(entity_id, element.id):
                continue
            store.add_memory(
                entity_id,
                create_memory(
                    f"Noticed: {element.description}",
                    MemoryType.OBSERVATION,
                    ["environment"],
                    importance=0.4,
                    timestamp=now,
                ),
            )
            seen.append(element.id)
        return seen


__all__ = ["SimulationRules", "CritterWorldRules", "to_base36"]
