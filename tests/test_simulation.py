"""Tests for the per-frame simulation driver."""

from __future__ import annotations

import pytest

from critterworld.persistence import InMemoryPersistence, load_store
from critterworld.schemas import BuildingType, EntityKind, Inventory, LogCategory, Position
from critterworld.simulation import Simulation
from critterworld.simulation_rules import CritterWorldRules, SimulationRules, to_base36
from critterworld.store import ROBOT_ID, StatePatch


class RecordingRules(SimulationRules):
    """Rules that only record which entities they saw."""

    def __init__(self, on_tick=None):
        self.seen = []
        self.on_tick = on_tick
        self.started = False
        self.ended = False

    def apply_entity_tick(self, store, entity_id, now, delta_seconds, positions):
        self.seen.append(entity_id)
        if self.on_tick is not None:
            self.on_tick(store, entity_id, now)

    def on_simulation_start(self, store):
        self.started = True

    def on_simulation_end(self, store):
        self.ended = True


class QuietCycle:
    def __init__(self):
        self.ticks = []

    def tick(self, now, delta_seconds):
        self.ticks.append((now, delta_seconds))


class QuietDialogue:
    def __init__(self):
        self.pruned = []

    def prune(self, living):
        self.pruned.append(set(living))

    def check_response(self, entity_id, now):
        return False

    def check_initiation(self, entity_id, now, positions):
        return False

    def update(self, now):
        return []

    async def drain(self):
        return None


class QuietThinking:
    def prune(self, living):
        pass

    def check(self, entity_id, now, positions):
        return False

    async def drain(self):
        return None


@pytest.fixture
def quiet(store):
    def build(rules=None, **kwargs):
        return Simulation(
            store,
            rules=rules or RecordingRules(),
            cycle=QuietCycle(),
            dialogue=QuietDialogue(),
            thinking=QuietThinking(),
            **kwargs,
        )

    return build


def test_tick_applies_patches_then_visits_living_entities(store, quiet):
    rules = RecordingRules()
    simulation = quiet(rules)
    store.post_patch(StatePatch("directive", lambda s: s.set_user_directive("look around")))
    store.remove_critter("Critter-C")

    result = simulation.tick(0.5)

    assert result.now == 0.5
    assert store.clock == 0.5
    assert result.patches_applied == 1
    assert store.user_directive == "look around"
    assert rules.seen == store.living_entity_ids()
    assert "Critter-C" not in rules.seen
    assert simulation.cycle.ticks == [(0.5, 0.5)]


def test_negative_delta_does_not_rewind(store, quiet):
    simulation = quiet()
    simulation.tick(1.0)

    result = simulation.tick(-5.0)

    assert result.delta_seconds == 0.0
    assert store.clock == 1.0


def test_deaths_and_births_are_reported(store, quiet):
    def on_tick(store, entity_id, now):
        if entity_id == "Critter-B":
            store.remove_critter("Critter-B")
        if entity_id == "Critter-D" and "Critter-Z" not in store.registry:
            store.add_critter("Critter-Z", "#ffffff", Position(x=1, z=1), generation=1, now=now)

    rules = RecordingRules(on_tick)
    simulation = quiet(rules)

    result = simulation.tick(1.0)

    assert result.deaths == ["Critter-B"]
    assert result.births == ["Critter-Z"]
    # Newborns join from the next tick on.
    assert "Critter-Z" not in rules.seen

    simulation.tick(1.0)
    assert "Critter-Z" in rules.seen


def test_construction_needs_materials(store, quiet):
    simulation = quiet()

    assert simulation.start_construction(BuildingType.TENT, Position(x=50, z=50)) is None
    assert store.buildings == []


def test_solo_construction_completes(store, quiet):
    store.set_inventory(Inventory(fiber=6))
    simulation = quiet()

    building = simulation.start_construction(BuildingType.TENT, Position(x=50, z=50))

    assert building.id == "building-1"
    assert store.inventory.fiber == 1
    assert store.activity_log[-1].category == LogCategory.BUILD

    assert simulation.tick(15.0).buildings_completed == []
    assert store.buildings[0].construction_progress == pytest.approx(0.5)

    result = simulation.tick(15.0)

    assert result.buildings_completed == ["building-1"]
    assert store.buildings[0].built
    assert store.timeline[-1].type == "construction"
    assert store.timeline[-1].importance == 0.6


def test_nearby_workers_speed_up_construction(store, quiet):
    store.set_inventory(Inventory(fiber=5))
    site = Position(x=50, z=50)
    for entity_id in (ROBOT_ID, "Critter-A", "Critter-B"):
        store.set_position(entity_id, Position(x=51, y=0.5, z=52))
    simulation = quiet()
    simulation.start_construction(BuildingType.TENT, site)

    # Three workers build twice as fast: 15s of a 30s tent finishes it.
    assert simulation.tick(15.0).buildings_completed == ["building-1"]


def test_building_ids_skip_existing(store, quiet):
    store.set_inventory(Inventory(fiber=10))
    simulation = quiet()

    first = simulation.start_construction(BuildingType.TENT, Position(x=50, z=50))
    second = simulation.start_construction(BuildingType.TENT, Position(x=-50, z=50))

    assert (first.id, second.id) == ("building-1", "building-2")


def test_failing_listener_is_logged(store, quiet, capsys):
    received = []

    def broken(result, store):
        raise RuntimeError("listener exploded")

    simulation = quiet(tick_listeners=[broken, lambda result, store: received.append(result.now)])

    simulation.tick(1.0)

    assert received == [1.0]
    assert "[!] [Simulation] Tick listener failed: listener exploded" in capsys.readouterr().out


def test_give_directive(store, quiet):
    simulation = quiet()

    simulation.give_directive("find crystals")

    assert store.user_directive == "find crystals"


@pytest.mark.asyncio
async def test_drain_applies_posted_patches(store, quiet):
    simulation = quiet()
    store.post_patch(StatePatch("inventory", lambda s: s.add_inventory_item("crystal", 2)))

    assert await simulation.drain() == 1
    assert store.inventory.crystal == 2


@pytest.mark.asyncio
async def test_save_without_backend_raises(quiet):
    with pytest.raises(RuntimeError):
        await quiet().save()


@pytest.mark.asyncio
async def test_run_ticks_and_saves(store, quiet):
    rules = RecordingRules()
    persistence = InMemoryPersistence()
    simulation = quiet(rules, persistence=persistence)

    await simulation.run(seconds=2.0, step=0.5, autosave_every=None)

    assert simulation.ticks == 4
    assert store.clock == pytest.approx(2.0)
    assert rules.started and rules.ended
    restored = await load_store(persistence)
    assert restored.living_entity_ids() == store.living_entity_ids()


@pytest.mark.asyncio
async def test_run_rejects_bad_step(quiet):
    with pytest.raises(ValueError):
        await quiet().run(seconds=1.0, step=0.0)


def test_default_rules_keep_the_world_consistent(store, seeded_rng):
    simulation = Simulation(
        store,
        rules=CritterWorldRules(rng=seeded_rng),
        cycle=QuietCycle(),
        dialogue=QuietDialogue(),
        thinking=QuietThinking(),
        rng=seeded_rng,
    )

    for _ in range(5):
        simulation.tick(1.0)

    for entity_id in store.living_entity_ids():
        needs = store.needs[entity_id]
        assert 0.0 <= needs.hunger <= 1.0
        assert 0.0 <= needs.energy <= 1.0
        if store.kind_of(entity_id) != EntityKind.WILD_ANIMAL:
            assert entity_id in store.activities
    assert store.needs[ROBOT_ID].energy == pytest.approx(store.robot_status.battery / 100.0)


def test_to_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "z"
    assert to_base36(36) == "10"


def test_timers_of_the_dead_are_pruned(store, quiet):
    simulation = quiet()
    store.remove_critter("Critter-C")

    simulation.tick(1.0)

    assert simulation.dialogue.pruned == [set(store.living_entity_ids())]
    assert "Critter-C" not in simulation.dialogue.pruned[0]
