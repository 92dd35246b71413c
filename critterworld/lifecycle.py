"""Aging, health transitions, and reproduction eligibility.

Health is an explicit state machine::

    healthy -> sick -> healthy          (recovery)
    healthy | sick -> dying -> dead     (terminal)

``tick_lifecycle`` is evaluated once per fixed step (1 simulated second by
default). Age accumulates unconditionally; reaching ``max_age`` or running out
of health is terminal regardless of the current status. Sickness onset and
reproduction are Bernoulli trials drawn from the injected ``rng``.
"""

from __future__ import annotations

import math
import random
from typing import Optional

from .schemas import HealthStatus, LifecycleState, NeedsState


MIN_MAX_AGE = 60.0
MAX_AGE_SPREAD = 60.0
INITIAL_REPRODUCTION_COOLDOWN = 15.0
POST_REPRODUCTION_COOLDOWN = 60.0
MIN_REPRODUCTION_AGE = 15.0
EMERGENCY_POPULATION = 2

SICK_HEALTH_DRAIN = 0.002
SICK_RECOVERY_RATE = 0.003
RECOVERY_HUNGER = 0.6
RECOVERY_HEALTH_BONUS = 0.2
STARVING_HUNGER = 0.15
STARVING_SICKNESS_CHANCE = 0.002
BASE_SICKNESS_CHANCE = 0.0001
DYING_HEALTH = 0.2


def create_lifecycle(generation: int = 0, rng: Optional[random.Random] = None) -> LifecycleState:
    rand = (rng or random).random
    return LifecycleState(
        age=0.0,
        max_age=MIN_MAX_AGE + rand() * MAX_AGE_SPREAD,
        health=1.0,
        health_status=HealthStatus.HEALTHY,
        sickness_duration=0.0,
        reproduction_cooldown=INITIAL_REPRODUCTION_COOLDOWN,
        generation=generation,
    )


def _settle_terminal(health: float, age: float, max_age: float, status: HealthStatus) -> tuple[float, HealthStatus]:
    if health <= 0.0 or age >= max_age:
        return 0.0, HealthStatus.DEAD
    if health < DYING_HEALTH:
        return health, HealthStatus.DYING
    return health, status


def tick_lifecycle(
    state: LifecycleState,
    delta_seconds: float,
    needs: NeedsState,
    rng: Optional[random.Random] = None,
) -> LifecycleState:
    """Advance one lifecycle step. Dead entities are returned unchanged."""

    if state.health_status == HealthStatus.DEAD:
        return state

    rand = (rng or random).random
    dt = max(0.0, delta_seconds)

    age = state.age + dt
    cooldown = max(0.0, state.reproduction_cooldown - dt)
    health = state.health
    status = state.health_status
    sickness = state.sickness_duration

    if status == HealthStatus.SICK:
        sickness -= dt
        health -= SICK_HEALTH_DRAIN * dt
        if needs.hunger > RECOVERY_HUNGER:
            health += SICK_RECOVERY_RATE * dt
        if sickness <= 0.0:
            sickness = 0.0
            status = HealthStatus.HEALTHY
            health = min(1.0, health + RECOVERY_HEALTH_BONUS)
    elif status == HealthStatus.HEALTHY:
        chance = STARVING_SICKNESS_CHANCE if needs.hunger < STARVING_HUNGER else BASE_SICKNESS_CHANCE
        if rand() < chance:
            status = HealthStatus.SICK
            sickness = 120.0 + rand() * 180.0
            health = max(0.3, health - 0.15)

    health = min(1.0, health)
    health, status = _settle_terminal(health, age, state.max_age, status)

    return state.model_copy(
        update={
            "age": age,
            "health": max(0.0, health),
            "health_status": status,
            "sickness_duration": sickness,
            "reproduction_cooldown": cooldown,
        }
    )


def apply_health_damage(state: LifecycleState, amount: float) -> LifecycleState:
    """Subtract health (hazards, attacks) and re-evaluate terminal states."""

    if state.health_status == HealthStatus.DEAD or amount <= 0.0:
        return state
    health = state.health - amount
    health, status = _settle_terminal(health, state.age, state.max_age, state.health_status)
    return state.model_copy(update={"health": max(0.0, health), "health_status": status})


def check_reproduction(
    state: LifecycleState,
    needs: NeedsState,
    alive_count: int,
    rng: Optional[random.Random] = None,
) -> bool:
    """Per-tick Bernoulli trial for reproduction.

    With two or fewer critters alive the thresholds relax so the population
    is biased away from extinction: sick parents qualify, dying ones never do.
    """

    if state.reproduction_cooldown > 0.0 or state.age < MIN_REPRODUCTION_AGE:
        return False

    rand = (rng or random).random

    if alive_count <= EMERGENCY_POPULATION:
        if state.health_status in (HealthStatus.DEAD, HealthStatus.DYING):
            return False
        if needs.hunger < 0.2 or needs.energy < 0.2:
            return False
        return rand() < 0.003

    if state.health_status != HealthStatus.HEALTHY:
        return False
    if needs.hunger < 0.4 or needs.energy < 0.35:
        return False
    return rand() < 0.001


def mutate_color(hex_color: str, rng: Optional[random.Random] = None) -> str:
    """Shift each RGB channel by up to +-30 to give offspring a family resemblance."""

    rand = (rng or random).random
    channels = []
    for start in (1, 3, 5):
        value = int(hex_color[start:start + 2], 16)
        shift = math.floor((rand() - 0.5) * 60)
        channels.append(max(0, min(255, value + shift)))
    return "#" + "".join(f"{c:02x}" for c in channels)


def lifecycle_to_dialogue_context(state: LifecycleState) -> str:
    if state.health_status == HealthStatus.SICK:
        return "You feel sick and weak."
    if state.health_status == HealthStatus.DYING:
        return "You are very weak and can barely move."
    if state.max_age > 0 and state.age / state.max_age > 0.8:
        return "You are getting old."
    return ""


def lifecycle_speed_multiplier(state: LifecycleState) -> float:
    if state.health_status == HealthStatus.SICK:
        return 0.3
    if state.health_status == HealthStatus.DYING:
        return 0.15
    if state.health_status == HealthStatus.DEAD:
        return 0.0
    if state.max_age <= 0:
        return 1.0
    return 1.0 - min(1.0, state.age / state.max_age) * 0.2


def is_alive(state: LifecycleState) -> bool:
    return state.health_status != HealthStatus.DEAD


__all__ = [
    "POST_REPRODUCTION_COOLDOWN",
    "create_lifecycle",
    "tick_lifecycle",
    "apply_health_damage",
    "check_reproduction",
    "mutate_color",
    "lifecycle_to_dialogue_context",
    "lifecycle_speed_multiplier",
    "is_alive",
]
