"""Tests for need decay, satisfaction and desires."""

import pytest

from critterworld.needs import (
    compute_desires,
    decay_needs,
    default_needs,
    needs_to_activity_bias,
    needs_to_dialogue_context,
    needs_to_emotion_influence,
    satisfy_need,
)
from critterworld.schemas import EntityKind, NeedKind, NeedsState


def make_needs(**overrides) -> NeedsState:
    values = dict(hunger=1.0, energy=1.0, social=1.0, comfort=1.0)
    values.update(overrides)
    return NeedsState(**values)


def test_critter_needs_decay_at_per_second_rates():
    decayed = decay_needs(make_needs(), 10.0, EntityKind.CRITTER)

    assert decayed.hunger == pytest.approx(1.0 - 0.08)
    assert decayed.energy == pytest.approx(1.0 - 0.04)
    assert decayed.social == pytest.approx(1.0 - 0.03)
    assert decayed.comfort == pytest.approx(1.0 - 0.02)


def test_energy_decays_faster_at_night():
    day = decay_needs(make_needs(), 10.0, EntityKind.CRITTER, is_night=False)
    night = decay_needs(make_needs(), 10.0, EntityKind.CRITTER, is_night=True)

    assert night.energy < day.energy


def test_robot_never_gets_hungry():
    decayed = decay_needs(make_needs(hunger=0.4), 1000.0, EntityKind.ROBOT)

    assert decayed.hunger == pytest.approx(0.4)


@pytest.mark.parametrize("kind", list(EntityKind))
def test_needs_stay_in_bounds(kind):
    state = default_needs(kind)
    for _ in range(50):
        state = decay_needs(state, 100.0, kind, is_night=True)
        for value in state.model_dump().values():
            assert 0.0 <= value <= 1.0

    assert state.energy == 0.0


def test_negative_delta_does_not_refill():
    state = make_needs(hunger=0.5)

    assert decay_needs(state, -30.0, EntityKind.CRITTER) == state


def test_satisfy_need_clamps_both_ways():
    state = make_needs(hunger=0.9, energy=0.1)

    assert satisfy_need(state, NeedKind.HUNGER, 0.5).hunger == 1.0
    assert satisfy_need(state, NeedKind.ENERGY, -0.5).energy == 0.0


def test_desires_sorted_by_urgency():
    desires = compute_desires(make_needs(hunger=0.1, energy=0.5, social=0.2), EntityKind.CRITTER)

    assert [d.kind for d in desires] == ["eat", "rest", "socialize"]
    assert desires[0].urgency == pytest.approx(0.9)
    assert desires[2].urgency == pytest.approx(0.8 * 0.6)


def test_robot_desires_recharge_not_food():
    desires = compute_desires(make_needs(hunger=0.0, energy=0.3), EntityKind.ROBOT)

    assert [d.kind for d in desires] == ["recharge"]


def test_activity_bias_needs_urgency():
    assert needs_to_activity_bias([]) is None
    assert needs_to_activity_bias(compute_desires(make_needs(hunger=0.7), EntityKind.CRITTER)) is None
    assert needs_to_activity_bias(compute_desires(make_needs(hunger=0.2), EntityKind.CRITTER)) == "seek_resource"
    assert needs_to_activity_bias(compute_desires(make_needs(energy=0.1), EntityKind.CRITTER)) == "rest"


def test_dialogue_context_describes_pressing_needs():
    text = needs_to_dialogue_context(make_needs(hunger=0.1, energy=0.4, social=0.1), EntityKind.CRITTER)

    assert "starving" in text
    assert "tired" in text
    assert "very lonely" in text
    assert needs_to_dialogue_context(make_needs(), EntityKind.CRITTER) == ""


def test_robot_context_talks_about_battery():
    assert needs_to_dialogue_context(make_needs(energy=0.1), EntityKind.ROBOT) == "battery nearly empty"


def test_emotion_influence_from_hunger_and_exhaustion():
    influence = needs_to_emotion_influence(make_needs(hunger=0.1, energy=0.1), EntityKind.CRITTER)

    assert influence["happiness"] == pytest.approx(-0.15)
    assert influence["anger"] == pytest.approx(0.05)
    assert influence["energy"] == pytest.approx(-0.1)
    assert needs_to_emotion_influence(make_needs(), EntityKind.CRITTER) == {}
