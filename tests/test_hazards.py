"""Tests for hazard triggering, timing and shelter protection."""

import pytest

from critterworld.environment.hazards import (
    create_weather_event,
    effective_damage,
    effective_temperature,
    event_progress,
    is_event_active,
    is_event_finished,
    shelter_type_for_protection,
    should_block_resource_regen,
    should_trigger_weather_event,
    weather_movement_multiplier,
    weather_warning,
)
from critterworld.schemas import Season, ShelterType, Weather, WeatherEventType


def test_storm_needs_rain(fixed_rng):
    assert should_trigger_weather_event(Weather.RAINY, 10, 3, Season.SPRING, fixed_rng(0.01)) == WeatherEventType.STORM
    assert should_trigger_weather_event(Weather.SUNNY, 10, 3, Season.SPRING, fixed_rng(0.01)) is None


def test_blizzard_needs_freezing_snow(fixed_rng):
    assert should_trigger_weather_event(Weather.SNOWY, -5, 17, Season.WINTER, fixed_rng(0.07)) == WeatherEventType.BLIZZARD
    assert should_trigger_weather_event(Weather.SNOWY, 2, 17, Season.WINTER, fixed_rng(0.07)) is None


def test_drought_on_every_twentieth_day(fixed_rng):
    assert should_trigger_weather_event(Weather.CLOUDY, 20, 20, Season.AUTUMN, fixed_rng(0.05)) == WeatherEventType.DROUGHT
    assert should_trigger_weather_event(Weather.CLOUDY, 20, 19, Season.AUTUMN, fixed_rng(0.05)) is None


def test_event_starts_after_warning_lead():
    storm = create_weather_event(WeatherEventType.STORM, now=100.0)

    assert storm.start_time == 160.0
    assert storm.duration == 180.0
    assert not is_event_active(storm, 159.0)
    assert is_event_active(storm, 160.0)
    assert is_event_active(storm, 339.0)
    assert not is_event_active(storm, 340.0)
    assert is_event_finished(storm, 340.0)
    assert event_progress(storm, 250.0) == pytest.approx(0.5)


def test_warning_only_inside_lead_window():
    storm = create_weather_event(WeatherEventType.STORM, now=0.0)

    assert weather_warning(storm, 10.0) == "A storm is approaching! Get to shelter. (1 min)"
    assert weather_warning(storm, 60.0) is None
    assert weather_warning(create_weather_event(WeatherEventType.CALM, 0.0), 0.0) is None


def test_regen_blocked_only_while_blocking_event_active():
    heatwave = create_weather_event(WeatherEventType.HEATWAVE, now=0.0)
    storm = create_weather_event(WeatherEventType.STORM, now=0.0)

    assert not should_block_resource_regen(None, 0.0)
    assert not should_block_resource_regen(heatwave, 60.0)
    assert should_block_resource_regen(heatwave, 200.0)
    assert not should_block_resource_regen(storm, 100.0)


def test_shelter_reduces_damage():
    blizzard = create_weather_event(WeatherEventType.BLIZZARD, now=0.0)

    assert effective_damage(blizzard, 2.0) == pytest.approx(2.0)
    assert effective_damage(blizzard, 2.0, ShelterType.TENT) == pytest.approx(1.0)
    assert effective_damage(blizzard, 2.0, ShelterType.REINFORCED_SHELTER) == pytest.approx(0.2)


def test_effective_temperature_pulls_toward_comfort():
    blizzard = create_weather_event(WeatherEventType.BLIZZARD, now=0.0)

    assert effective_temperature(5.0, blizzard) == pytest.approx(-20.0)
    assert effective_temperature(5.0, blizzard, ShelterType.TENT) == pytest.approx(0.0)
    assert effective_temperature(12.0, None) == 12.0


def test_movement_penalty_ignored_under_shelter():
    storm = create_weather_event(WeatherEventType.STORM, now=0.0)

    assert weather_movement_multiplier(storm) == pytest.approx(0.5)
    assert weather_movement_multiplier(storm, sheltered=True) == 1.0


def test_shelter_tier_mapping():
    assert shelter_type_for_protection(0.0) == ShelterType.NONE
    assert shelter_type_for_protection(0.6) == ShelterType.TENT
    assert shelter_type_for_protection(0.8) == ShelterType.WOODEN_SHELTER
    assert shelter_type_for_protection(0.95) == ShelterType.REINFORCED_SHELTER
