"""Time, season, weather and temperature model.

Weather is a four-state machine with mandatory staging through ``cloudy``::

    sunny  -> cloudy
    cloudy -> target (any)
    rainy  -> cloudy
    snowy  -> cloudy

``next_weather`` is the only transition function and handles every
``(current, target)`` pair explicitly, so a direct rainy/snowy swap can never
be produced. Temperature is a deterministic function of clock, weather and
season; it is recomputed rather than stored authoritatively.
"""

from __future__ import annotations

import math
import random
from typing import Dict, Optional, Tuple

from ..schemas import Season, TimeOfDay, Weather


HOURS_PER_DAY = 24.0
# In-sim hours advanced per wall-clock minute (one day is ~8 minutes).
HOURS_PER_REAL_MINUTE = 3.0
DAYS_PER_SEASON = 5
SEASON_ORDER = (Season.SPRING, Season.SUMMER, Season.AUTUMN, Season.WINTER)

# (sunny, cloudy, rainy, snowy)
SEASON_WEATHER: Dict[Season, Tuple[float, float, float, float]] = {
    Season.SPRING: (0.45, 0.25, 0.20, 0.10),
    Season.SUMMER: (0.55, 0.25, 0.15, 0.05),
    Season.AUTUMN: (0.30, 0.30, 0.25, 0.15),
    Season.WINTER: (0.20, 0.25, 0.15, 0.40),
}

WEATHER_TEMP_MOD: Dict[Weather, float] = {
    Weather.SUNNY: 3.0,
    Weather.CLOUDY: -1.0,
    Weather.RAINY: -4.0,
    Weather.SNOWY: -10.0,
}

SEASON_TEMP_MOD: Dict[Season, float] = {
    Season.SPRING: 0.0,
    Season.SUMMER: 5.0,
    Season.AUTUMN: -2.0,
    Season.WINTER: -8.0,
}

_WEATHER_ORDER = (Weather.SUNNY, Weather.CLOUDY, Weather.RAINY, Weather.SNOWY)


def next_weather(current: Weather, target: Weather) -> Weather:
    """Advance one stage from ``current`` toward ``target``."""

    if current == target:
        return current
    if current == Weather.SUNNY:
        return Weather.CLOUDY
    if current == Weather.CLOUDY:
        return target
    if current == Weather.RAINY:
        return Weather.CLOUDY
    if current == Weather.SNOWY:
        return Weather.CLOUDY
    raise ValueError(f"Unknown weather state: {current!r}")


def roll_target_weather(season: Season, rng: Optional[random.Random] = None) -> Weather:
    """Sample a weather target from the season's probability table."""

    roll = (rng or random).random()
    cumulative = 0.0
    for weather, probability in zip(_WEATHER_ORDER, SEASON_WEATHER[season]):
        cumulative += probability
        if roll < cumulative:
            return weather
    return Weather.CLOUDY


def season_from_day(day: int) -> Season:
    """Days 1-5 spring, 6-10 summer, 11-15 autumn, 16-20 winter, then repeat."""
    index = ((day - 1) % (DAYS_PER_SEASON * 4)) // DAYS_PER_SEASON
    return SEASON_ORDER[index]


def compute_temperature(time: float, weather: Weather, season: Season) -> float:
    """Diurnal sine peaking mid-afternoon plus weather and season offsets."""

    diurnal = 8.0 * math.sin(((time - 8.0) / HOURS_PER_DAY) * 2.0 * math.pi)
    value = 14.0 + diurnal + WEATHER_TEMP_MOD[weather] + SEASON_TEMP_MOD[season]
    return round(value * 10.0) / 10.0


def advance_clock(time: float, day: int, delta_seconds: float) -> Tuple[float, int, bool]:
    """Advance the in-sim clock by ``delta_seconds`` of wall-clock time.

    Returns ``(time, day, rolled_over)``.
    """

    new_time = time + (max(0.0, delta_seconds) / 60.0) * HOURS_PER_REAL_MINUTE
    rolled = False
    while new_time >= HOURS_PER_DAY:
        new_time -= HOURS_PER_DAY
        day += 1
        rolled = True
    return new_time, day, rolled


def time_of_day(time: float) -> TimeOfDay:
    if 6 <= time < 12:
        return TimeOfDay.MORNING
    if 12 <= time < 18:
        return TimeOfDay.AFTERNOON
    if 18 <= time < 22:
        return TimeOfDay.EVENING
    return TimeOfDay.NIGHT


def is_night(time: float) -> bool:
    """Night as far as behaviour is concerned (before 05:00 or after 21:00)."""
    return time < 5 or time > 21


def is_dawn(time: float) -> bool:
    return 5 <= time < 7


def format_game_time(time: float, day: int) -> str:
    hours = int(time)
    minutes = int((time - hours) * 60)
    return f"Day {day}, {hours:02d}:{minutes:02d}"


__all__ = [
    "SEASON_WEATHER",
    "WEATHER_TEMP_MOD",
    "SEASON_TEMP_MOD",
    "next_weather",
    "roll_target_weather",
    "season_from_day",
    "compute_temperature",
    "advance_clock",
    "time_of_day",
    "is_night",
    "is_dawn",
    "format_game_time",
]
