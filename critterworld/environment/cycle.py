"""
Environment cycle: the world clock and everything that runs on it.

One ``EnvironmentCycle.tick`` call per simulation tick advances the day clock
and fires each periodic job whose cadence is due:

- weather step toward the target every 30s, target re-roll every 90s
- temperature recompute every 2s
- hazard trigger roll every 60s (only while no event is active)
- hazard warning / end check every 5s
- resource regeneration every 2s (skipped while the event blocks spawning)
- environment emotion broadcast every 5s
- critter spawn check every 30s

Hazard damage is continuous: while an event is active, every tick damages the
robot's durability and every critter's health, reduced by whatever shelter
covers them.
"""

from __future__ import annotations

import random
from typing import Callable, Optional

from ..buildings import building_effect
from ..cadence import Cadence, CadenceClock
from ..emotions import apply_emotion_event
from ..lifecycle import apply_health_damage, mutate_color
from ..logging_utils import log_deterministic, log_success
from ..memory import create_memory
from ..resources import consume, regenerate
from ..schemas import (
    EntityKind,
    LogCategory,
    LogImportance,
    MemoryType,
    Position,
    ShelterType,
    Weather,
    WeatherEvent,
)
from ..store import DEFAULT_CRITTERS, ROBOT_ID, WorldStateStore
from ..survival import damage_durability
from .hazards import (
    create_weather_event,
    effective_damage,
    event_name,
    is_event_active,
    is_event_finished,
    shelter_type_for_protection,
    should_block_resource_regen,
    should_trigger_weather_event,
    weather_warning,
)
from .weather import (
    advance_clock,
    compute_temperature,
    is_dawn,
    is_night,
    next_weather,
    roll_target_weather,
    season_from_day,
)


WEATHER_STEP = Cadence(every=30.0, delay=30.0)
TARGET_REROLL = Cadence(every=90.0, delay=90.0)
TEMPERATURE_UPDATE = Cadence(every=2.0)
HAZARD_CHECK = Cadence(every=60.0, delay=60.0)
HAZARD_STATUS = Cadence(every=5.0)
RESOURCE_REGEN = Cadence(every=2.0, delay=2.0)
EMOTION_BROADCAST = Cadence(every=5.0, delay=5.0)
SPAWN_CHECK = Cadence(every=30.0, delay=30.0)

REGEN_STEP_SECONDS = 2.0
BROADCAST_INTENSITY = 0.3
SPAWN_BELOW = 3
SPAWN_ORE_THRESHOLD = 0.3
SPAWN_ORE_COST = 0.3

_WEATHER_EVENTS = {
    Weather.RAINY: "weather_rain",
    Weather.SNOWY: "weather_snow",
    Weather.SUNNY: "weather_sunny",
}

EventResolvedHook = Callable[[WeatherEvent], None]


class EnvironmentCycle:
    """Drives time, weather, hazards, regeneration and spawning on a store.

    Args:
        store: World state to read and mutate
        rng: Optional random source (``random.Random`` or the module)
        on_event_resolved: Analytics hook called with each expired hazard
    """

    def __init__(
        self,
        store: WorldStateStore,
        rng: Optional[random.Random] = None,
        on_event_resolved: Optional[EventResolvedHook] = None,
    ) -> None:
        self.store = store
        self.rng = rng or random
        self.on_event_resolved = on_event_resolved
        self.clock = CadenceClock()
        self._event_started = False

    def tick(self, now: float, delta_seconds: float) -> None:
        self._advance_time(delta_seconds)

        if self.clock.due("weather", WEATHER_STEP, now):
            self._step_weather()
        if self.clock.due("target", TARGET_REROLL, now):
            self._reroll_target()
        if self.clock.due("temperature", TEMPERATURE_UPDATE, now):
            self._update_temperature()

        if self.store.environment.active_event is None:
            if self.clock.due("hazard", HAZARD_CHECK, now):
                self._maybe_trigger_hazard(now)
        if self.clock.due("hazard_status", HAZARD_STATUS, now):
            self._check_hazard_status(now)
        self._apply_hazard_damage(now, delta_seconds)

        if self.clock.due("regen", RESOURCE_REGEN, now):
            self._regenerate(now)
        if self.clock.due("broadcast", EMOTION_BROADCAST, now):
            self.broadcast_emotions()
        if self.clock.due("spawn", SPAWN_CHECK, now):
            self.maybe_spawn_critter(now)

    # ------------------------------------------------------------------
    # Clock and weather
    # ------------------------------------------------------------------

    def _advance_time(self, delta_seconds: float) -> None:
        env = self.store.environment
        time, day, rolled = advance_clock(env.time, env.day, delta_seconds)
        if not rolled:
            self.store.update_environment(time=time)
            return

        season = season_from_day(day)
        target = roll_target_weather(season, self.rng)
        self.store.update_environment(time=time, day=day, season=season, target_weather=target)
        log_deterministic(f"[Environment] Day {day} begins ({season.value})")
        if season != env.season:
            self.store.log_activity(LogCategory.EVENT, f"The season turned to {season.value}", importance=LogImportance.HIGH)

    def _step_weather(self) -> None:
        env = self.store.environment
        weather = next_weather(env.weather, env.target_weather)
        if weather == env.weather:
            return
        self.store.update_environment(weather=weather)
        log_deterministic(f"[Weather] {env.weather.value} -> {weather.value}")

    def _reroll_target(self) -> None:
        self.store.update_environment(target_weather=roll_target_weather(self.store.environment.season, self.rng))

    def _update_temperature(self) -> None:
        env = self.store.environment
        self.store.update_environment(temperature=compute_temperature(env.time, env.weather, env.season))

    # ------------------------------------------------------------------
    # Hazards
    # ------------------------------------------------------------------

    def _maybe_trigger_hazard(self, now: float) -> None:
        env = self.store.environment
        event_type = should_trigger_weather_event(env.weather, env.temperature, env.day, env.season, self.rng)
        if event_type is None:
            return
        event = create_weather_event(event_type, now)
        self.store.update_environment(active_event=event)
        self._event_started = False
        log_deterministic(f"[Hazard] {event_name(event)} forming, starts in {event.start_time - now:.0f}s")

    def _check_hazard_status(self, now: float) -> None:
        event = self.store.environment.active_event
        if event is None:
            return

        if not event.warning_issued:
            warning = weather_warning(event, now)
            if warning:
                self.store.log_activity(LogCategory.WARNING, warning, importance=LogImportance.CRITICAL)
                event = event.model_copy(update={"warning_issued": True})
                self.store.update_environment(active_event=event)

        if is_event_finished(event, now):
            self._resolve_hazard(event)

    def _resolve_hazard(self, event: WeatherEvent) -> None:
        name = event_name(event)
        self.store.update_environment(active_event=None)
        self._event_started = False
        self.store.log_activity(LogCategory.EVENT, f"The {name} has passed")
        self.store.combat_stats = self.store.combat_stats.model_copy(
            update={"catastrophes_survived": self.store.combat_stats.catastrophes_survived + 1}
        )
        self.store.record_timeline("catastrophe", f"Survived the {name}", importance=0.8)
        log_success(f"[Hazard] {name} resolved")
        if self.on_event_resolved is not None:
            self.on_event_resolved(event)

    def shelter_at(self, position: Optional[Position]) -> ShelterType:
        if position is None:
            return ShelterType.NONE
        return shelter_type_for_protection(building_effect(self.store.buildings, position, "shelter_protection"))

    def _apply_hazard_damage(self, now: float, delta_seconds: float) -> None:
        event = self.store.environment.active_event
        if event is None or not is_event_active(event, now):
            return

        if not self._event_started:
            self._event_started = True
            self.store.log_activity(LogCategory.EVENT, f"A {event_name(event)} has begun", importance=LogImportance.HIGH)
            log_deterministic(f"[Hazard] {event_name(event)} started")

        if event.effects.damage_per_second <= 0:
            return

        if self.store.is_alive(ROBOT_ID):
            damage = effective_damage(event, delta_seconds, self.shelter_at(self.store.positions.get(ROBOT_ID)))
            self.store.set_robot_status(damage_durability(self.store.robot_status, damage))

        for critter_id in self.store.living_entity_ids(EntityKind.CRITTER):
            lifecycle = self.store.lifecycles.get(critter_id)
            if lifecycle is None:
                continue
            damage = effective_damage(event, delta_seconds, self.shelter_at(self.store.positions.get(critter_id)))
            self.store.set_lifecycle(critter_id, apply_health_damage(lifecycle, damage / 100.0))

    # ------------------------------------------------------------------
    # Resources, mood and spawning
    # ------------------------------------------------------------------

    def _regenerate(self, now: float) -> None:
        if should_block_resource_regen(self.store.environment.active_event, now):
            return
        self.store.set_resources(regenerate(self.store.resources, REGEN_STEP_SECONDS))

    def broadcast_emotions(self) -> None:
        """Nudge every living entity's mood with the weather and time of day."""

        env = self.store.environment
        weather_event = _WEATHER_EVENTS.get(env.weather)
        if is_night(env.time):
            time_event: Optional[str] = "night_time"
        elif is_dawn(env.time):
            time_event = "dawn"
        else:
            time_event = None

        for entity_id in self.store.living_entity_ids():
            emotion = self.store.emotions.get(entity_id)
            if emotion is None:
                continue
            if weather_event:
                emotion = apply_emotion_event(emotion, weather_event, BROADCAST_INTENSITY)
            if time_event:
                emotion = apply_emotion_event(emotion, time_event, BROADCAST_INTENSITY)
            self.store.set_emotion(entity_id, emotion)

    def _next_critter_id(self) -> str:
        index = len([e for e in self.store.registry.values() if e.kind == EntityKind.CRITTER])
        while True:
            letter = chr(65 + index % 26)
            suffix = "" if index < 26 else str(index // 26)
            candidate = f"Critter-{letter}{suffix}"
            if candidate not in self.store.registry:
                return candidate
            index += 1

    def maybe_spawn_critter(self, now: float) -> Optional[str]:
        """Spawn a critter beside a rich ore node when the population is low."""

        if self.store.alive_count(EntityKind.CRITTER) >= SPAWN_BELOW:
            return None
        ores = [n for n in self.store.resources if n.type == "mineral_ore" and n.capacity > SPAWN_ORE_THRESHOLD]
        if not ores:
            return None

        ore = self.rng.choice(ores)
        critter_id = self._next_critter_id()
        base_color = self.rng.choice([color for _, color, _ in DEFAULT_CRITTERS])
        position = Position(
            x=ore.position.x + (self.rng.random() - 0.5) * 4,
            y=0.5,
            z=ore.position.z + (self.rng.random() - 0.5) * 4,
        )
        if not self.store.add_critter(critter_id, mutate_color(base_color, self.rng), position, now=now, rng=self.rng):
            return None

        self.store.set_resources(consume(self.store.resources, ore.id, SPAWN_ORE_COST))
        self.store.add_memory(
            ROBOT_ID,
            create_memory(
                f"A new critter ({critter_id}) emerged near the ore",
                MemoryType.EVENT,
                [critter_id, "environment"],
                importance=0.6,
                timestamp=now,
            ),
        )
        self.store.log_activity(
            LogCategory.DISCOVERY,
            f"{critter_id} emerged near {ore.name or ore.id}",
            entity_id=critter_id,
            importance=LogImportance.HIGH,
        )
        log_success(f"[Spawn] {critter_id} appeared near {ore.id}")
        return critter_id


__all__ = ["EnvironmentCycle"]
