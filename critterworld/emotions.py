"""Emotion dynamics: baseline decay, discrete events, and derived projections.

Emotion is a hidden variable. Other entities never read an affect vector
directly; it leaks into behaviour only through the projections defined here
(movement speed, dialogue tone, tint colour).

Every affect lives in [0, 1]. Decay pulls each affect exponentially toward the
rest baseline; events push affects by a signed table delta scaled by an
intensity (default 0.3) and are clamped afterwards.
"""

from __future__ import annotations

import math
from typing import Dict, Mapping, Optional, Tuple

from .schemas import Affect, EmotionState


DEFAULT_INTENSITY = 0.3
DECAY_RATE = 0.01
CHANGE_THRESHOLD = 0.005

REST_STATE = EmotionState(happiness=0.2, curiosity=0.3, fear=0.05, anger=0.0, energy=0.5)

# Initial vectors per personality index (ord(name[0]) % 4 for critters).
PERSONALITY_STATES: Dict[int, EmotionState] = {
    0: EmotionState(happiness=0.5, curiosity=0.7, fear=0.05, anger=0.05, energy=0.9),
    1: EmotionState(happiness=0.1, curiosity=0.3, fear=0.5, anger=0.0, energy=0.4),
    2: EmotionState(happiness=0.6, curiosity=0.4, fear=0.05, anger=0.0, energy=0.6),
    3: EmotionState(happiness=0.2, curiosity=0.4, fear=0.1, anger=0.3, energy=0.6),
}

PERSONALITY_DESCRIPTIONS: Dict[int, str] = {
    0: "energetic and curious, always poking at new things",
    1: "timid and cautious, startled easily",
    2: "cheerful and easygoing, likes company",
    3: "grumpy and blunt, but not mean",
}

# (happiness, curiosity, fear, anger, energy)
EVENT_DELTAS: Dict[str, Tuple[float, float, float, float, float]] = {
    "positive_dialogue": (0.15, 0.1, -0.05, -0.05, -0.02),
    "negative_dialogue": (-0.1, -0.05, 0.05, 0.1, -0.03),
    "quarrel": (-0.2, -0.1, 0.1, 0.3, -0.05),
    "encounter_friend": (0.1, 0.05, -0.1, -0.05, 0.02),
    "encounter_stranger": (0.0, 0.15, 0.05, 0.0, 0.0),
    "encounter_enemy": (-0.1, -0.05, 0.2, 0.15, 0.05),
    "resting": (0.02, -0.02, -0.05, -0.05, 0.08),
    "exploring": (0.03, 0.05, -0.02, -0.02, -0.03),
    "weather_rain": (-0.03, 0.0, 0.02, 0.01, -0.02),
    "weather_snow": (0.02, 0.05, 0.01, 0.0, -0.03),
    "weather_sunny": (0.03, 0.01, -0.02, -0.01, 0.02),
    "night_time": (-0.01, -0.03, 0.03, 0.0, -0.05),
    "dawn": (0.05, 0.03, -0.03, -0.02, 0.08),
    "hunger_low": (-0.1, -0.05, 0.05, 0.1, -0.05),
    "sick": (-0.15, -0.1, 0.1, 0.0, -0.1),
    "entity_died": (-0.3, 0.0, 0.15, 0.0, -0.05),
    "new_birth": (0.3, 0.15, -0.05, -0.1, 0.05),
}

_AFFECTS = [affect.value for affect in Affect]


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _clamped(values: Mapping[str, float]) -> EmotionState:
    return EmotionState(**{name: _clamp(values[name]) for name in _AFFECTS})


def initial_emotion(personality_index: Optional[int] = None) -> EmotionState:
    """Starting vector for a personality, or the neutral default."""
    if personality_index is None:
        return EmotionState()
    return PERSONALITY_STATES[personality_index % len(PERSONALITY_STATES)].model_copy()


def personality_index_for(name: str) -> int:
    """Derive a stable personality index from an entity name."""
    if not name:
        return 0
    return ord(name[0]) % len(PERSONALITY_STATES)


def apply_emotion_event(
    state: EmotionState,
    event: str,
    intensity: float = DEFAULT_INTENSITY,
) -> EmotionState:
    """Add ``delta * intensity`` from the event table and clamp.

    Raises:
        KeyError: If ``event`` is not a known emotion event.
    """

    deltas = EVENT_DELTAS[event]
    current = state.model_dump()
    return _clamped(
        {name: current[name] + delta * intensity for name, delta in zip(_AFFECTS, deltas)}
    )


def apply_emotion_influence(state: EmotionState, influence: Mapping[str, float]) -> EmotionState:
    """Add raw affect deltas (e.g. from needs) and clamp."""
    if not influence:
        return state
    current = state.model_dump()
    for name, delta in influence.items():
        current[name] = current[name] + delta
    return _clamped(current)


def decay_emotion(
    state: EmotionState,
    delta_seconds: float,
    baseline: EmotionState = REST_STATE,
) -> EmotionState:
    """Move every affect toward ``baseline`` without overshooting."""

    factor = 1.0 - math.exp(-DECAY_RATE * max(0.0, delta_seconds))
    current = state.model_dump()
    target = baseline.model_dump()
    return _clamped(
        {name: current[name] + (target[name] - current[name]) * factor for name in _AFFECTS}
    )


def dominant_emotion(state: EmotionState) -> str:
    candidates = [
        ("happiness", state.happiness),
        ("curiosity", state.curiosity),
        ("fear", state.fear),
        ("anger", state.anger),
    ]
    candidates.sort(key=lambda item: abs(item[1]), reverse=True)
    return candidates[0][0]


def emotion_to_speed_multiplier(state: EmotionState) -> float:
    """High fear with low energy freezes (0.3); energy plus curiosity excites (1.5)."""
    mult = (
        0.7
        + state.energy * 0.5
        + state.curiosity * 0.3
        + state.anger * 0.2
        - state.fear * 0.5
    )
    return max(0.3, min(1.5, mult))


def emotion_to_dialogue_context(state: EmotionState) -> str:
    parts = []
    if state.happiness > 0.5:
        parts.append("in a good mood")
    elif state.happiness < 0.1:
        parts.append("feeling down")

    if state.curiosity > 0.6:
        parts.append("curious about something")
    if state.fear > 0.4:
        parts.append("a little scared")
    if state.anger > 0.4:
        parts.append("irritated")
    if state.energy < 0.3:
        parts.append("sleepy")

    if not parts:
        parts.append("calm")
    return "Mood: " + ", ".join(parts)


def emotion_changed(a: EmotionState, b: EmotionState, threshold: float = CHANGE_THRESHOLD) -> bool:
    """True when any affect moved more than ``threshold`` (throttles store writes)."""
    left = a.model_dump()
    right = b.model_dump()
    return any(abs(left[name] - right[name]) > threshold for name in _AFFECTS)


def emotion_to_color(state: EmotionState, base_color: str) -> str:
    """Tint a ``#rrggbb`` base colour by the current mood."""

    r = int(base_color[1:3], 16) / 255
    g = int(base_color[3:5], 16) / 255
    b = int(base_color[5:7], 16) / 255

    anger = state.anger * 0.3
    r += anger
    g -= anger * 0.5
    b -= anger * 0.5

    fear = state.fear * 0.25
    r -= fear * 0.3
    g -= fear * 0.3
    b += fear

    happy = state.happiness * 0.2
    r += happy
    g += happy * 0.8
    b -= happy * 0.3

    g += state.curiosity * 0.15

    energy_factor = 0.6 + state.energy * 0.4
    channels = [_clamp(c * energy_factor) for c in (r, g, b)]
    return "#" + "".join(f"{round(c * 255):02x}" for c in channels)


__all__ = [
    "DEFAULT_INTENSITY",
    "REST_STATE",
    "PERSONALITY_STATES",
    "PERSONALITY_DESCRIPTIONS",
    "EVENT_DELTAS",
    "initial_emotion",
    "personality_index_for",
    "apply_emotion_event",
    "apply_emotion_influence",
    "decay_emotion",
    "dominant_emotion",
    "emotion_to_speed_multiplier",
    "emotion_to_dialogue_context",
    "emotion_changed",
    "emotion_to_color",
]
