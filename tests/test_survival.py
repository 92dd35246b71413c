"""Tests for the robot's battery, body temperature and durability."""

import pytest

from critterworld.schemas import RobotStatus, Weather
from critterworld.survival import (
    charge_battery,
    damage_durability,
    drain_battery,
    is_functional,
    repair,
    solar_available,
    status_warnings,
    update_body_temperature,
)


def test_drain_by_activity():
    status = RobotStatus(battery=50.0)

    assert drain_battery(status, 60.0, "idle").battery == pytest.approx(49.5)
    assert drain_battery(status, 60.0, "working").battery == pytest.approx(48.0)


def test_empty_battery_malfunctions_until_charged():
    dead = drain_battery(RobotStatus(battery=0.1), 60.0, "moving")

    assert dead.battery == 0.0
    assert dead.malfunctioning
    assert not is_functional(dead)

    revived = charge_battery(dead, 6.0, "energy_node")
    assert revived.battery == pytest.approx(1.0)
    assert not revived.malfunctioning


def test_charge_caps_at_full():
    assert charge_battery(RobotStatus(battery=99.0), 600.0, "solar").battery == 100.0


def test_solar_only_on_sunny_days():
    assert solar_available(Weather.SUNNY, 12.0)
    assert not solar_available(Weather.SUNNY, 20.0)
    assert not solar_available(Weather.CLOUDY, 12.0)


def test_body_temperature_converges_and_overheats():
    status = RobotStatus(temperature=20.0)

    warmed = update_body_temperature(status, ambient=80.0, delta_seconds=30.0)

    assert warmed.temperature == pytest.approx(80.0)
    assert warmed.overheated
    assert warmed.durability == pytest.approx(100.0 - 0.5 * 30.0)


def test_shelter_slows_temperature_change():
    sheltered = update_body_temperature(RobotStatus(temperature=20.0), ambient=-40.0, delta_seconds=6.0, sheltered=True)

    assert sheltered.temperature == pytest.approx(17.0)
    assert not sheltered.frozen


def test_repair_uses_parts():
    status = RobotStatus(durability=60.0, repair_parts=1)

    repaired = repair(status)
    assert repaired.durability == 90.0
    assert repaired.repair_parts == 0
    assert repair(repaired) is repaired


def test_damage_and_warnings():
    status = damage_durability(RobotStatus(battery=10.0, repair_parts=0), 80.0)

    assert status.durability == 20.0
    assert status_warnings(status) == ["battery low", "durability low", "no repair parts"]
