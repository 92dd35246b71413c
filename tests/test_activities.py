"""Tests for the activity selector."""

import pytest

from critterworld.activities import (
    is_valid_action,
    movement_pattern,
    select_next_activity,
    should_switch_activity,
)
from critterworld.resources import initial_resource_nodes
from critterworld.schemas import (
    ActivityKind,
    ActivityState,
    Desire,
    EmotionState,
    EntityKind,
    Position,
    Weather,
)


CALM = EmotionState(happiness=0.3, curiosity=0.3, fear=0.0, anger=0.0, energy=0.5)


def select(emotion=CALM, time=12.0, weather=Weather.SUNNY, **kwargs):
    values = dict(relationships={}, self_id="Critter-A", nearby=[], desires=[], now=0.0)
    values.update(kwargs)
    return select_next_activity(emotion, time, weather, **values)


def test_valid_ai_suggestion_wins(fixed_rng):
    state = select(ai_suggestion=ActivityKind.PATROL, kind=EntityKind.ROBOT, rng=fixed_rng(0.0))

    assert state.current == ActivityKind.PATROL


def test_invalid_suggestion_for_kind_is_ignored(fixed_rng):
    assert not is_valid_action(ActivityKind.PATROL, EntityKind.CRITTER)

    state = select(ai_suggestion=ActivityKind.PATROL, kind=EntityKind.CRITTER, rng=fixed_rng(0.3, 0.1))

    assert state.current == ActivityKind.FORAGE


def test_urgent_hunger_targets_nearest_food(fixed_rng):
    state = select(
        desires=[Desire(kind="eat", urgency=0.8)],
        rng=fixed_rng(0.5),
        resources=initial_resource_nodes(),
        position=Position(x=-25, z=15),
    )

    assert state.current == ActivityKind.SEEK_RESOURCE
    assert state.target_resource_id == "ore-1"


def test_tired_at_night_rests(fixed_rng):
    sleepy = CALM.model_copy(update={"energy": 0.2})

    state = select(emotion=sleepy, time=23.0, rng=fixed_rng(0.5))

    assert state.current == ActivityKind.REST


def test_friend_nearby_socializes(fixed_rng):
    state = select(
        emotion=CALM.model_copy(update={"happiness": 0.6}),
        relationships={"Critter-A:Critter-B": 0.5},
        nearby=[("Critter-B", 4.0)],
        rng=fixed_rng(0.1),
    )

    assert state.current == ActivityKind.SOCIALIZE
    assert state.target_entity_id == "Critter-B"


def test_fallthrough_duration_in_range(fixed_rng):
    state = select(rng=fixed_rng(0.3, 0.1), now=5.0)

    assert state.current == ActivityKind.FORAGE
    assert state.started_at == 5.0
    assert state.duration == pytest.approx(9.2)


def test_should_switch_after_duration():
    state = ActivityState(current=ActivityKind.EXPLORE, started_at=10.0, duration=5.0)

    assert should_switch_activity(None, 0.0)
    assert not should_switch_activity(state, 14.9)
    assert should_switch_activity(state, 15.0)


def test_rest_pattern_stays_home():
    pattern = movement_pattern(ActivityKind.REST)

    assert pattern.wander_radius == 0
    assert pattern.home_affinity == 1.0
