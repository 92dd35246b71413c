"""Physiological needs: decay over time, satisfaction, and derived drives.

Needs are stored per entity as :class:`NeedsState` (1.0 = satisfied). Each
entity kind decays at its own per-second rates; energy drains faster at night.
The robot's hunger never decays because its energy economy lives in the
battery meter of :mod:`critterworld.survival`.

All functions are pure: they return new state and clamp to [0, 1].
"""

from __future__ import annotations

from typing import Dict, List, Optional

from .schemas import Desire, EntityKind, NeedKind, NeedsState


DEFAULT_NEEDS: Dict[EntityKind, NeedsState] = {
    EntityKind.ROBOT: NeedsState(hunger=1.0, energy=0.8, social=0.6, comfort=0.8),
    EntityKind.CRITTER: NeedsState(hunger=0.7, energy=0.7, social=0.5, comfort=0.7),
    EntityKind.WILD_ANIMAL: NeedsState(hunger=0.6, energy=0.7, social=0.3, comfort=0.6),
}

# Per-second decay rates: (hunger, energy_day, energy_night, social, comfort)
DECAY_RATES: Dict[EntityKind, tuple[float, float, float, float, float]] = {
    EntityKind.CRITTER: (0.008, 0.004, 0.005, 0.003, 0.002),
    EntityKind.ROBOT: (0.0, 0.005, 0.008, 0.002, 0.001),
    EntityKind.WILD_ANIMAL: (0.004, 0.002, 0.002, 0.0, 0.0),
}

DESIRE_THRESHOLD = 0.2
SOCIAL_DESIRE_THRESHOLD = 0.5
ACTIVITY_BIAS_THRESHOLD = 0.4


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def default_needs(kind: EntityKind) -> NeedsState:
    """Return a fresh copy of the default needs for ``kind``."""
    return DEFAULT_NEEDS[kind].model_copy()


def decay_needs(
    state: NeedsState,
    delta_seconds: float,
    kind: EntityKind,
    is_night: bool = False,
) -> NeedsState:
    """Decay every need by the kind's per-second rate.

    Negative deltas are treated as zero so a clock hiccup can never refill needs.
    """

    dt = max(0.0, delta_seconds)
    hunger_rate, energy_day, energy_night, social_rate, comfort_rate = DECAY_RATES[kind]
    energy_rate = energy_night if is_night else energy_day

    return NeedsState(
        hunger=_clamp(state.hunger - hunger_rate * dt),
        energy=_clamp(state.energy - energy_rate * dt),
        social=_clamp(state.social - social_rate * dt),
        comfort=_clamp(state.comfort - comfort_rate * dt),
    )


def satisfy_need(state: NeedsState, need: NeedKind, amount: float) -> NeedsState:
    """Raise (or with a negative amount, lower) one need, clamped."""
    current = getattr(state, need.value)
    return state.model_copy(update={need.value: _clamp(current + amount)})


def compute_desires(state: NeedsState, kind: EntityKind) -> List[Desire]:
    """Turn unmet needs into desires sorted by urgency (most urgent first)."""

    desires: List[Desire] = []

    if kind != EntityKind.ROBOT:
        urgency = 1.0 - state.hunger
        if urgency > DESIRE_THRESHOLD:
            desires.append(Desire(kind="eat", urgency=urgency))

    energy_urgency = 1.0 - state.energy
    if energy_urgency > DESIRE_THRESHOLD:
        desires.append(
            Desire(
                kind="recharge" if kind == EntityKind.ROBOT else "rest",
                urgency=energy_urgency,
            )
        )

    if kind != EntityKind.WILD_ANIMAL:
        social_urgency = 1.0 - state.social
        if social_urgency > SOCIAL_DESIRE_THRESHOLD:
            desires.append(Desire(kind="socialize", urgency=social_urgency * 0.6))

    desires.sort(key=lambda d: d.urgency, reverse=True)
    return desires


def needs_to_activity_bias(desires: List[Desire]) -> Optional[str]:
    """Map the strongest desire to a preferred activity name, if urgent enough."""

    if not desires:
        return None
    top = desires[0]
    if top.urgency < ACTIVITY_BIAS_THRESHOLD:
        return None
    return {
        "eat": "seek_resource",
        "recharge": "seek_resource",
        "rest": "rest",
        "socialize": "socialize",
    }.get(top.kind)


def needs_to_dialogue_context(state: NeedsState, kind: EntityKind) -> str:
    """Short natural-language description of pressing needs for prompts."""

    parts: List[str] = []
    if kind != EntityKind.ROBOT:
        if state.hunger < 0.2:
            parts.append("starving")
        elif state.hunger < 0.5:
            parts.append("a bit hungry")

    if state.energy < 0.2:
        parts.append("exhausted" if kind != EntityKind.ROBOT else "battery nearly empty")
    elif state.energy < 0.5:
        parts.append("tired" if kind != EntityKind.ROBOT else "battery running low")

    if state.social < 0.2:
        parts.append("very lonely")
    elif state.social < 0.5:
        parts.append("wants company")

    if state.comfort < 0.2:
        parts.append("very uncomfortable")

    return ", ".join(parts)


def needs_to_emotion_influence(state: NeedsState, kind: EntityKind) -> Dict[str, float]:
    """Partial affect deltas pushed by unmet needs (empty when content)."""

    influence: Dict[str, float] = {}
    if kind != EntityKind.ROBOT and state.hunger < 0.25:
        influence["happiness"] = -0.1
        influence["anger"] = 0.05
    if state.energy < 0.2:
        influence["energy"] = -0.1
        influence["happiness"] = influence.get("happiness", 0.0) - 0.05
    return influence


__all__ = [
    "DEFAULT_NEEDS",
    "DECAY_RATES",
    "default_needs",
    "decay_needs",
    "satisfy_need",
    "compute_desires",
    "needs_to_activity_bias",
    "needs_to_dialogue_context",
    "needs_to_emotion_influence",
]
