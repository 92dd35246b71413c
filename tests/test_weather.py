"""Tests for the clock, season mapping, staged weather and temperature."""

import pytest

from critterworld.environment.weather import (
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
from critterworld.schemas import Season, TimeOfDay, Weather


@pytest.mark.parametrize(
    "day,season",
    [(1, Season.SPRING), (6, Season.SUMMER), (11, Season.AUTUMN), (16, Season.WINTER), (21, Season.SPRING)],
)
def test_season_from_day(day, season):
    assert season_from_day(day) == season


def test_rainy_to_snowy_passes_through_cloudy():
    step = next_weather(Weather.RAINY, Weather.SNOWY)

    assert step == Weather.CLOUDY
    assert next_weather(step, Weather.SNOWY) == Weather.SNOWY


@pytest.mark.parametrize("current", list(Weather))
@pytest.mark.parametrize("target", list(Weather))
def test_no_direct_precipitation_swap(current, target):
    step = next_weather(current, target)

    assert {current, step} != {Weather.RAINY, Weather.SNOWY}
    if current == target:
        assert step == current


def test_temperature_literal_check():
    assert compute_temperature(14.0, Weather.SUNNY, Season.SUMMER) == 30.0


def test_temperature_rounds_to_one_decimal():
    value = compute_temperature(3.3, Weather.RAINY, Season.WINTER)

    assert value == round(value, 1)


def test_advance_clock_rolls_over_days():
    # One real minute is three game hours.
    assert advance_clock(12.0, 1, 60.0) == (15.0, 1, False)

    time, day, rolled = advance_clock(23.0, 4, 60.0)
    assert time == pytest.approx(2.0)
    assert day == 5
    assert rolled


def test_advance_clock_ignores_negative_delta():
    assert advance_clock(10.0, 2, -100.0) == (10.0, 2, False)


def test_roll_target_weather_uses_cumulative_table(fixed_rng):
    assert roll_target_weather(Season.WINTER, rng=fixed_rng(0.1)) == Weather.SUNNY
    assert roll_target_weather(Season.WINTER, rng=fixed_rng(0.9)) == Weather.SNOWY
    assert roll_target_weather(Season.SPRING, rng=fixed_rng(0.5)) == Weather.CLOUDY


def test_time_helpers():
    assert time_of_day(7.0) == TimeOfDay.MORNING
    assert time_of_day(23.0) == TimeOfDay.NIGHT
    assert is_night(22.0)
    assert not is_night(12.0)
    assert is_dawn(6.0)
    assert format_game_time(9.5, 3) == "Day 3, 09:30"
