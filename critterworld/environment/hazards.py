"""Hazard ("weather event") catalogue, triggering, and shelter protection.

Event times are measured on the simulation's wall clock in seconds. A new
event is scheduled to start ``warning.time_before_start`` seconds after it is
rolled, which leaves room for the one-shot warning before damage begins.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Dict, Optional

from ..schemas import (
    Season,
    ShelterType,
    Weather,
    WeatherEffects,
    WeatherEvent,
    WeatherEventType,
    WeatherWarning,
)


@dataclass(frozen=True)
class ShelterProtection:
    temperature_stabilization: float
    weather_protection: float
    damage_reduction: float


SHELTER_TYPES: Dict[ShelterType, ShelterProtection] = {
    ShelterType.NONE: ShelterProtection(0.0, 0.0, 0.0),
    ShelterType.TENT: ShelterProtection(0.5, 0.6, 0.5),
    ShelterType.WOODEN_SHELTER: ShelterProtection(0.7, 0.8, 0.7),
    ShelterType.REINFORCED_SHELTER: ShelterProtection(0.9, 0.95, 0.9),
}

COMFORT_TEMPERATURE = 20.0

EVENT_NAMES: Dict[WeatherEventType, str] = {
    WeatherEventType.STORM: "Storm",
    WeatherEventType.HEATWAVE: "Heatwave",
    WeatherEventType.BLIZZARD: "Blizzard",
    WeatherEventType.DROUGHT: "Drought",
    WeatherEventType.CALM: "Calm",
}

_CATALOGUE: Dict[WeatherEventType, tuple[float, WeatherEffects, WeatherWarning]] = {
    WeatherEventType.STORM: (
        180.0,
        WeatherEffects(
            temperature_change=-8.0,
            damage_per_second=0.5,
            movement_penalty=0.5,
            visibility_reduction=0.6,
            resource_spawn_block=False,
        ),
        WeatherWarning(message="A storm is approaching! Get to shelter.", time_before_start=60.0),
    ),
    WeatherEventType.HEATWAVE: (
        600.0,
        WeatherEffects(
            temperature_change=20.0,
            damage_per_second=0.3,
            movement_penalty=0.3,
            visibility_reduction=0.2,
            resource_spawn_block=True,
        ),
        WeatherWarning(message="A heatwave is coming. Find water and shade.", time_before_start=120.0),
    ),
    WeatherEventType.BLIZZARD: (
        210.0,
        WeatherEffects(
            temperature_change=-25.0,
            damage_per_second=1.0,
            movement_penalty=0.7,
            visibility_reduction=0.8,
            resource_spawn_block=True,
        ),
        WeatherWarning(message="A blizzard is closing in! Take cover now.", time_before_start=90.0),
    ),
    WeatherEventType.DROUGHT: (
        1800.0,
        WeatherEffects(
            temperature_change=10.0,
            damage_per_second=0.0,
            movement_penalty=0.0,
            visibility_reduction=0.0,
            resource_spawn_block=True,
        ),
        WeatherWarning(message="Drought expected. Stock up on food and water.", time_before_start=300.0),
    ),
    WeatherEventType.CALM: (
        0.0,
        WeatherEffects(),
        WeatherWarning(message="", time_before_start=0.0),
    ),
}


def should_trigger_weather_event(
    weather: Weather,
    temperature: float,
    day: int,
    season: Season,
    rng: Optional[random.Random] = None,
) -> Optional[WeatherEventType]:
    """Roll once against the conditional triggers; first matching rule wins."""

    roll = (rng or random).random()

    if weather == Weather.RAINY and roll < 0.05:
        return WeatherEventType.STORM
    if weather == Weather.SNOWY and temperature < 0 and roll < 0.08:
        return WeatherEventType.BLIZZARD
    if weather == Weather.SUNNY and season == Season.SUMMER and temperature > 30 and roll < 0.03:
        return WeatherEventType.HEATWAVE
    if season in (Season.SUMMER, Season.AUTUMN) and day % 20 == 0 and roll < 0.1:
        return WeatherEventType.DROUGHT
    return None


def create_weather_event(event_type: WeatherEventType, now: float) -> WeatherEvent:
    duration, effects, warning = _CATALOGUE[event_type]
    return WeatherEvent(
        type=event_type,
        duration=duration,
        start_time=now + warning.time_before_start,
        effects=effects.model_copy(),
        warning=warning.model_copy(),
    )


def event_name(event: WeatherEvent) -> str:
    return EVENT_NAMES[event.type]


def is_event_active(event: WeatherEvent, now: float) -> bool:
    elapsed = now - event.start_time
    return 0 <= elapsed < event.duration


def is_event_finished(event: WeatherEvent, now: float) -> bool:
    return now - event.start_time >= event.duration


def event_progress(event: WeatherEvent, now: float) -> float:
    if event.duration <= 0:
        return 1.0
    return min(1.0, max(0.0, (now - event.start_time) / event.duration))


def weather_warning(event: WeatherEvent, now: float) -> Optional[str]:
    """Warning text while the event is pending and inside its lead window."""

    if event.warning is None or not event.warning.message:
        return None
    until_start = event.start_time - now
    if 0 < until_start <= event.warning.time_before_start:
        minutes = math.ceil(until_start / 60.0)
        return f"{event.warning.message} ({minutes} min)"
    return None


def should_block_resource_regen(event: Optional[WeatherEvent], now: float) -> bool:
    if event is None:
        return False
    return is_event_active(event, now) and event.effects.resource_spawn_block


def effective_damage(event: WeatherEvent, delta_seconds: float, shelter: ShelterType = ShelterType.NONE) -> float:
    """Damage over ``delta_seconds`` after shelter damage reduction."""
    protection = SHELTER_TYPES[shelter]
    return event.effects.damage_per_second * (1.0 - protection.damage_reduction) * max(0.0, delta_seconds)


def effective_temperature(
    ambient: float,
    event: Optional[WeatherEvent],
    shelter: ShelterType = ShelterType.NONE,
) -> float:
    """Felt temperature: event offset, then pulled toward 20C by shelter."""

    value = ambient
    if event is not None:
        value += event.effects.temperature_change
    if shelter != ShelterType.NONE:
        stabilization = SHELTER_TYPES[shelter].temperature_stabilization
        value = COMFORT_TEMPERATURE + (value - COMFORT_TEMPERATURE) * (1.0 - stabilization)
    return value


def weather_movement_multiplier(event: Optional[WeatherEvent], sheltered: bool = False) -> float:
    if sheltered or event is None:
        return 1.0
    return 1.0 - event.effects.movement_penalty


def shelter_type_for_protection(protection: float) -> ShelterType:
    """Map a building's shelter protection factor to the nearest shelter tier."""
    if protection >= 0.95:
        return ShelterType.REINFORCED_SHELTER
    if protection >= 0.8:
        return ShelterType.WOODEN_SHELTER
    if protection > 0.0:
        return ShelterType.TENT
    return ShelterType.NONE


__all__ = [
    "ShelterProtection",
    "SHELTER_TYPES",
    "should_trigger_weather_event",
    "create_weather_event",
    "event_name",
    "is_event_active",
    "is_event_finished",
    "event_progress",
    "weather_warning",
    "should_block_resource_regen",
    "effective_damage",
    "effective_temperature",
    "weather_movement_multiplier",
    "shelter_type_for_protection",
]
