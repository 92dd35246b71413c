"""Tests for wild animal behaviour: fleeing, chasing, biting and wandering."""

import pytest

from critterworld.perception import positions_snapshot
from critterworld.schemas import HealthStatus, LogCategory, Position
from critterworld.simulation_rules import CritterWorldRules
from critterworld.store import ROBOT_ID
from critterworld.wildlife import (
    WILD_ANIMALS,
    WildAnimalMind,
    WildBehavior,
    decide_wild_behavior,
    move_wild_animal,
)


ORIGIN = Position(x=0, y=0.5, z=0)


def test_deer_flees_from_wolf_at_wider_range(fixed_rng):
    deer = WILD_ANIMALS["deer"]
    positions = {"deer-1": ORIGIN, "wolf-1": Position(x=12, y=0.5, z=0)}

    mind, struck = decide_wild_behavior(WildAnimalMind(home=ORIGIN), deer, "deer-1", ORIGIN, positions, 1.0, fixed_rng(0.1))

    assert struck is None
    assert mind.behavior == WildBehavior.FLEE
    assert (mind.target.x, mind.target.z) == (-15.0, 0.0)

    _, moved = move_wild_animal(mind, deer, ORIGIN, dt=1.0, now=1.0)
    # Fleeing runs at one and a half times the walking speed.
    assert moved.x == pytest.approx(-3.75)


def test_critter_at_same_distance_does_not_scare_deer(fixed_rng):
    deer = WILD_ANIMALS["deer"]
    positions = {"deer-1": ORIGIN, "Critter-A": Position(x=12, y=0.5, z=0)}

    mind, _ = decide_wild_behavior(WildAnimalMind(home=ORIGIN), deer, "deer-1", ORIGIN, positions, 1.0, fixed_rng(0.1))

    assert mind.behavior == WildBehavior.IDLE
    assert mind.next_decision == pytest.approx(4.5)


def test_wolf_chases_nearest_prey(fixed_rng):
    wolf = WILD_ANIMALS["wolf"]
    positions = {
        "wolf-1": ORIGIN,
        "Critter-A": Position(x=10, y=0.5, z=0),
        "rabbit-1": Position(x=0, y=0, z=15),
        ROBOT_ID: Position(x=1, y=0.5, z=0),
    }

    mind, struck = decide_wild_behavior(WildAnimalMind(home=ORIGIN), wolf, "wolf-1", ORIGIN, positions, 1.0, fixed_rng())

    assert struck is None
    assert mind.behavior == WildBehavior.CHASE
    assert mind.prey_id == "Critter-A"

    _, moved = move_wild_animal(mind, wolf, ORIGIN, dt=1.0, now=1.0)
    assert moved.x == pytest.approx(4.5)


def test_wolf_ignores_the_robot(fixed_rng):
    wolf = WILD_ANIMALS["wolf"]
    positions = {"wolf-1": ORIGIN, ROBOT_ID: Position(x=1, y=0.5, z=0)}

    mind, struck = decide_wild_behavior(WildAnimalMind(home=ORIGIN), wolf, "wolf-1", ORIGIN, positions, 1.0, fixed_rng(0.1))

    assert struck is None
    assert mind.behavior == WildBehavior.IDLE


def test_bites_are_throttled(fixed_rng):
    wolf = WILD_ANIMALS["wolf"]
    positions = {"wolf-1": ORIGIN, "Critter-A": Position(x=1, y=0.5, z=0)}
    mind = WildAnimalMind(home=ORIGIN, last_attack_at=9.0)

    mind, struck = decide_wild_behavior(mind, wolf, "wolf-1", ORIGIN, positions, 10.0, fixed_rng())
    assert mind.behavior == WildBehavior.ATTACK
    assert struck is None

    mind, struck = decide_wild_behavior(mind, wolf, "wolf-1", ORIGIN, positions, 11.5, fixed_rng())
    assert struck == "Critter-A"
    assert mind.last_attack_at == 11.5


def test_wolf_attacking_rabbit_deals_no_damage(fixed_rng):
    wolf = WILD_ANIMALS["wolf"]
    positions = {"wolf-1": ORIGIN, "rabbit-1": Position(x=1, y=0, z=0)}

    mind, struck = decide_wild_behavior(WildAnimalMind(home=ORIGIN), wolf, "wolf-1", ORIGIN, positions, 1.0, fixed_rng())

    assert mind.behavior == WildBehavior.ATTACK
    assert struck is None


def test_wander_picks_target_around_home(fixed_rng):
    deer = WILD_ANIMALS["deer"]
    home = Position(x=0, y=0, z=0)

    mind, _ = decide_wild_behavior(WildAnimalMind(home=home), deer, "deer-1", home, {}, 2.0, fixed_rng(0.5, 0.9, 0.0, 1.0))

    assert mind.behavior == WildBehavior.WANDER
    assert (mind.target.x, mind.target.z) == pytest.approx((16.0, -20.0))
    assert mind.next_decision == pytest.approx(15.0)


def test_arrival_ends_wandering(fixed_rng):
    deer = WILD_ANIMALS["deer"]
    mind = WildAnimalMind(home=ORIGIN, behavior=WildBehavior.WANDER, target=Position(x=0.5, y=0.5, z=0))

    mind, moved = move_wild_animal(mind, deer, ORIGIN, dt=1.0, now=3.0, rng=fixed_rng(0.0))

    assert moved is ORIGIN
    assert mind.behavior == WildBehavior.IDLE
    assert mind.next_decision == 5.0


def test_wolf_bite_hurts_critter_and_is_remembered(store, seeded_rng):
    store.set_position("wolf-1", Position(x=4, y=0.5, z=3))
    rules = CritterWorldRules(rng=seeded_rng)

    rules.apply_entity_tick(store, "wolf-1", 10.0, 0.1, positions_snapshot(store.positions))

    assert store.lifecycles["Critter-A"].health == pytest.approx(0.85)
    assert store.memories.get("Critter-A")[-1].content == "A wolf attacked me"
    assert store.memories.get(ROBOT_ID)[-1].content == "A wolf is attacking Critter-A"
    assert store.activity_log[-1].category == LogCategory.COMBAT

    rules.apply_entity_tick(store, "wolf-1", 11.0, 0.1, positions_snapshot(store.positions))
    assert store.lifecycles["Critter-A"].health == pytest.approx(0.85)

    rules.apply_entity_tick(store, "wolf-1", 12.5, 0.1, positions_snapshot(store.positions))
    assert store.lifecycles["Critter-A"].health == pytest.approx(0.70)


def test_fatal_bite_kills_critter(store, seeded_rng):
    store.set_position("wolf-1", Position(x=4, y=0.5, z=3))
    store.set_lifecycle("Critter-A", store.lifecycles["Critter-A"].model_copy(update={"health": 0.1}))
    rules = CritterWorldRules(rng=seeded_rng)

    rules.apply_entity_tick(store, "wolf-1", 10.0, 0.1, positions_snapshot(store.positions))

    assert not store.is_alive("Critter-A")
    assert store.lifecycles["Critter-A"].health_status == HealthStatus.DEAD
    deaths = [entry for entry in store.activity_log if entry.category == LogCategory.DEATH]
    assert deaths[-1].content == "Critter-A died of a wolf attack"


def test_rabbit_runs_from_wolf_in_the_world(store, seeded_rng):
    store.set_position("wolf-1", Position(x=15, y=0.5, z=5))
    rules = CritterWorldRules(rng=seeded_rng)

    rules.apply_entity_tick(store, "rabbit-1", 1.0, 0.5, positions_snapshot(store.positions))

    moved = store.positions["rabbit-1"]
    assert moved.x == pytest.approx(10 - 3.5 * 1.5 * 0.5)
    assert moved.z == pytest.approx(5.0)
