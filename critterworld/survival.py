"""Robot survival meters: battery, durability, and body temperature.

The robot does not eat. Its energy need is mirrored by a battery that drains
with activity and recharges from the sun or energy nodes. Durability is worn
down by hazards and extreme temperature and restored with repair parts.
Percent rates below are per minute unless noted.
"""

from __future__ import annotations

from typing import List

from .schemas import RobotStatus, Weather


BATTERY_DRAIN = {"idle": 0.5, "moving": 1.5, "working": 2.0}
CHARGE_RATE = {"solar": 2.0, "energy_node": 10.0}

TEMP_OVERHEAT = 40.0
TEMP_FREEZE = -10.0
OVERHEAT_DAMAGE = 0.5  # durability per second
FREEZE_DAMAGE = 0.3  # durability per second
REPAIR_AMOUNT = 30.0


def default_robot_status() -> RobotStatus:
    return RobotStatus()


def drain_battery(status: RobotStatus, delta_seconds: float, activity: str = "idle") -> RobotStatus:
    drain = BATTERY_DRAIN.get(activity, BATTERY_DRAIN["idle"]) / 60.0 * max(0.0, delta_seconds)
    battery = max(0.0, status.battery - drain)
    return status.model_copy(update={"battery": battery, "malfunctioning": battery <= 0.0})


def charge_battery(status: RobotStatus, delta_seconds: float, source: str = "solar") -> RobotStatus:
    charge = CHARGE_RATE[source] / 60.0 * max(0.0, delta_seconds)
    battery = min(100.0, status.battery + charge)
    return status.model_copy(update={"battery": battery, "malfunctioning": battery <= 0.0})


def solar_available(weather: Weather, time: float) -> bool:
    return weather == Weather.SUNNY and 6 <= time < 18


def update_body_temperature(
    status: RobotStatus,
    ambient: float,
    delta_seconds: float,
    sheltered: bool = False,
) -> RobotStatus:
    """Converge toward ambient (slower in shelter); extreme heat or cold wears durability."""

    dt = max(0.0, delta_seconds)
    rate = 0.5 if sheltered else 2.0
    temperature = status.temperature + (ambient - status.temperature) * rate * dt / 60.0

    durability = status.durability
    if temperature > TEMP_OVERHEAT:
        durability -= OVERHEAT_DAMAGE * dt
    elif temperature < TEMP_FREEZE:
        durability -= FREEZE_DAMAGE * dt

    return status.model_copy(
        update={
            "temperature": temperature,
            "durability": max(0.0, durability),
            "overheated": temperature > TEMP_OVERHEAT,
            "frozen": temperature < TEMP_FREEZE,
        }
    )


def damage_durability(status: RobotStatus, amount: float) -> RobotStatus:
    return status.model_copy(update={"durability": max(0.0, status.durability - max(0.0, amount))})


def repair(status: RobotStatus) -> RobotStatus:
    """Spend one repair part for +30 durability; no-op without parts."""
    if status.repair_parts <= 0:
        return status
    return status.model_copy(
        update={
            "durability": min(100.0, status.durability + REPAIR_AMOUNT),
            "repair_parts": status.repair_parts - 1,
        }
    )


def is_functional(status: RobotStatus) -> bool:
    return not status.malfunctioning and status.durability > 0


def status_warnings(status: RobotStatus) -> List[str]:
    warnings: List[str] = []
    if status.battery < 20:
        warnings.append("battery low")
    if status.battery <= 0:
        warnings.append("shut down")
    if status.durability < 30:
        warnings.append("durability low")
    if status.overheated:
        warnings.append("overheating")
    if status.frozen:
        warnings.append("frozen")
    if status.repair_parts == 0:
        warnings.append("no repair parts")
    return warnings


__all__ = [
    "default_robot_status",
    "drain_battery",
    "charge_battery",
    "solar_available",
    "update_body_temperature",
    "damage_durability",
    "repair",
    "is_functional",
    "status_warnings",
]
