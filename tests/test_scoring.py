"""Tests for score computation, ranks and achievements."""

import pytest

from critterworld.memory import create_memory
from critterworld.schemas import CombatStats, MemoryType
from critterworld.scoring import (
    RealtimeScore,
    ScoreChange,
    add_score_change,
    check_achievements,
    rank_for,
    score_store,
    update_achievements,
)
from critterworld.store import ROBOT_ID


def test_default_world_score(store):
    score = score_store(store)

    assert score.current.survival == 760
    assert score.current.total == 760
    assert score.rank.current == "D"
    assert score.rank.next_rank == "C"
    assert score.rank.points_to_next == 240
    assert score.rank.progress == pytest.approx(76.0)


def test_deaths_are_penalised(store):
    store.remove_critter("Critter-A")

    score = score_store(store)

    assert score.stats.population == 4
    assert score.stats.death_count == 1
    assert score.current.total == 10 + 4 * 50 + 500 - 50


def test_knowledge_counts_observations_and_events(store):
    store.add_memory(ROBOT_ID, create_memory("saw a pond", MemoryType.OBSERVATION, timestamp=1.0))
    store.add_memory(ROBOT_ID, create_memory("storm passed", MemoryType.EVENT, importance=0.9, timestamp=2.0))
    store.add_memory(ROBOT_ID, create_memory("chatted", MemoryType.DIALOGUE, timestamp=3.0))

    score = score_store(store)

    assert score.stats.knowledge_count == 2
    assert score.current.knowledge == 2 * 20 + 50


@pytest.mark.parametrize(
    "total,rank",
    [(0, "D"), (999, "D"), (1000, "C"), (9999, "A"), (14999, "S"), (15000, "SS")],
)
def test_rank_thresholds(total, rank):
    assert rank_for(total).current == rank


def test_top_rank_has_no_next():
    info = rank_for(20000)

    assert info.next_rank is None
    assert info.progress == 100.0


def test_achievements_unlock_once(store):
    first = update_achievements(store, now=10.0)

    assert [a.id for a in first] == ["first_day"]
    assert store.timeline[-1].type == "milestone"
    assert update_achievements(store, now=20.0) == []


def test_catastrophe_achievement(store):
    store.combat_stats = CombatStats(catastrophes_survived=1)

    ids = {a.id for a in check_achievements(score_store(store), store.achievements)}

    assert "survivor" in ids
    assert "disaster_master" not in ids


def test_recent_changes_are_capped():
    score = RealtimeScore()
    for index in range(12):
        score = add_score_change(score, ScoreChange(type="gain", amount=index, reason="x", category="survival"))

    assert len(score.recent_changes) == 10
    assert score.recent_changes[0].amount == 2
