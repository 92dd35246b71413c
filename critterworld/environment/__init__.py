"""Environment helpers: day clock, staged weather, temperature and hazards.

``EnvironmentCycle`` lives in ``critterworld.environment.cycle``; it depends on
the world store, so it is not imported here.
"""

from .hazards import (
    SHELTER_TYPES,
    ShelterProtection,
    create_weather_event,
    effective_damage,
    effective_temperature,
    event_name,
    event_progress,
    is_event_active,
    is_event_finished,
    should_block_resource_regen,
    should_trigger_weather_event,
    weather_movement_multiplier,
    weather_warning,
)
from .weather import (
    advance_clock,
    compute_temperature,
    format_game_time,
    is_dawn,
    is_night,
    next_weather,
    roll_target_weather,
    season_from_day,
    time_of_day,
)

__all__ = [
    "SHELTER_TYPES",
    "ShelterProtection",
    "create_weather_event",
    "effective_damage",
    "effective_temperature",
    "event_name",
    "event_progress",
    "is_event_active",
    "is_event_finished",
    "should_block_resource_regen",
    "should_trigger_weather_event",
    "weather_movement_multiplier",
    "weather_warning",
    "advance_clock",
    "compute_temperature",
    "format_game_time",
    "is_dawn",
    "is_night",
    "next_weather",
    "roll_target_weather",
    "season_from_day",
    "time_of_day",
]
