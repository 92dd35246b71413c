"""Tests for shared models and the wild animal catalogue."""

import pytest
from pydantic import ValidationError

from critterworld.schemas import ActivityKind, EntityKind, EnvironmentState, Position, RobotStatus, ThoughtResult
from critterworld.wildlife import WILD_ANIMALS, species_of, wild_animal_id


def test_position_distance_ignores_height():
    assert Position(x=0, y=5, z=0).distance_to(Position(x=3, y=0, z=4)) == 5.0


def test_environment_defaults():
    env = EnvironmentState()

    assert (env.time, env.day, env.temperature) == (12.0, 1, 15.0)
    assert env.active_event is None


def test_thought_result_needs_text():
    with pytest.raises(ValidationError):
        ThoughtResult(thought="", action=ActivityKind.IDLE)


def test_robot_status_bounds():
    with pytest.raises(ValidationError):
        RobotStatus(battery=120)


def test_wild_animal_ids():
    assert wild_animal_id("deer", 2) == "deer-2"
    assert species_of("deer-2") == "deer"
    assert species_of("Critter-A") is None
    assert WILD_ANIMALS["wolf"].aggressive


def test_store_uses_catalogue_names(store):
    entry = store.registry["bird-1"]

    assert entry.kind == EntityKind.WILD_ANIMAL
    assert entry.name == "Bird"
    assert entry.color == WILD_ANIMALS["bird"].color
