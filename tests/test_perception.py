"""Tests for proximity scans and world-element observation."""

import pytest

from critterworld.perception import (
    FALLBACK_THEMES,
    build_env_context,
    get_nearby_elements,
    nearby_entities,
    positions_snapshot,
    theme_from_elements,
)
from critterworld.schemas import Position, Weather


POSITIONS = {
    "robot": Position(x=0, z=0),
    "Critter-A": Position(x=3, z=4),
    "Critter-B": Position(x=1, z=0),
    "Critter-C": Position(x=30, z=0),
}


def test_nearby_entities_sorted_and_excludes_self():
    found = nearby_entities(POSITIONS, "robot", radius=8.0)

    assert found == [("Critter-B", 1.0), ("Critter-A", 5.0)]


def test_nearby_entities_limit_and_candidates():
    assert nearby_entities(POSITIONS, "robot", 8.0, limit=1) == [("Critter-B", 1.0)]
    assert nearby_entities(POSITIONS, "robot", 8.0, candidates=["Critter-A"]) == [("Critter-A", 5.0)]
    assert nearby_entities(POSITIONS, "ghost", 8.0) == []


def test_snapshot_is_a_copy():
    snapshot = positions_snapshot(POSITIONS)
    snapshot["robot"].x = 50

    assert POSITIONS["robot"].x == 0


def test_time_conditioned_elements():
    night_ids = {element.id for element in get_nearby_elements(-8, 12, 1.0, time=23.0)}
    day_ids = {element.id for element in get_nearby_elements(-8, 12, 1.0, time=12.0)}

    assert "fireflies-1" in night_ids
    assert "fireflies-1" not in day_ids
    assert "mushroom-1" in day_ids


def test_theme_from_elements(fixed_rng):
    elements = get_nearby_elements(-8, 12, 1.0, time=12.0)

    assert theme_from_elements(elements, rng=fixed_rng(0.0)) == "the glowing mushrooms growing there"
    assert theme_from_elements([], rng=fixed_rng(0.0)) == FALLBACK_THEMES[0]


@pytest.mark.parametrize("weather", [Weather.SUNNY, Weather.SNOWY])
def test_env_context_without_landmarks(weather):
    assert build_env_context(14.5, weather, x=200, z=200) == f"Time: 14:00, weather: {weather.value}"
