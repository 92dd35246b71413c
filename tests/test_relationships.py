"""Tests for the relationship ledger and affinity policies."""

import pytest

from critterworld.relationships import (
    DecayingAffinityPolicy,
    StickyAffinityPolicy,
    adjust_affinity,
    dialogue_probability_multiplier,
    get_affinity,
    pair_key,
    relationship_to_dialogue_context,
    should_approach,
    should_avoid,
)


def test_pair_key_is_order_independent():
    assert pair_key("robot", "Critter-A") == pair_key("Critter-A", "robot") == "Critter-A:robot"


def test_unseen_pair_reads_neutral():
    assert get_affinity({}, "a", "b") == 0.0


def test_adjust_is_symmetric_and_pure():
    original = {}
    updated = adjust_affinity(original, "a", "b", 0.25)

    assert original == {}
    assert get_affinity(updated, "b", "a") == pytest.approx(0.25)


def test_adjust_clamps():
    relationships = {}
    for _ in range(30):
        relationships = adjust_affinity(relationships, "a", "b", 0.1)
    assert get_affinity(relationships, "a", "b") == 1.0

    for _ in range(30):
        relationships = adjust_affinity(relationships, "a", "b", -0.15)
    assert get_affinity(relationships, "a", "b") == -1.0


def test_approach_and_avoid_thresholds():
    assert should_approach(0.31)
    assert not should_approach(0.3)
    assert should_avoid(-0.31)
    assert not should_avoid(-0.3)


def test_probability_multiplier_range():
    assert dialogue_probability_multiplier(1.0) == pytest.approx(1.75)
    assert dialogue_probability_multiplier(-1.0) == pytest.approx(0.25)
    assert dialogue_probability_multiplier(0.0) == pytest.approx(1.0)


def test_context_wording_by_band():
    assert "close friend" in relationship_to_dialogue_context(0.7, "Critter-B")
    assert "acquaintance" in relationship_to_dialogue_context(0.0, "Critter-B")
    assert "dislike" in relationship_to_dialogue_context(-0.9, "Critter-B")


def test_sticky_policy_never_fades():
    relationships = {"a:b": 0.8, "a:c": -0.4}

    assert StickyAffinityPolicy().decay(relationships, 10_000.0) == relationships


def test_decaying_policy_fades_toward_zero_without_crossing():
    policy = DecayingAffinityPolicy(rate=0.01)
    faded = policy.decay({"a:b": 0.05, "a:c": -0.5}, 10.0)

    assert faded["a:b"] == 0.0
    assert faded["a:c"] == pytest.approx(-0.4)
