import pytest

from pyenergyflow.display import (CHARGING, DISCHARGING, IDLE, battery_count_string, battery_direction, home_power,
                                  is_active, secondary_summary, solar_energy_wh)
from pyenergyflow.models import ChargingState, EnergySnapshot, SecondaryDevice


@pytest.mark.parametrize("count, expected", [(None, ""), (0, ""), (1, " · 1x"), (2, " · 2x")])
def test_battery_count_string(count, expected):
    assert battery_count_string(EnergySnapshot(battery_count=count)) == expected


def test_battery_count_string_without_snapshot():
    assert battery_count_string(None) == ""


@pytest.mark.parametrize("power, expected", [
    (None, IDLE),
    (0, IDLE),
    (10, IDLE),
    (-10, IDLE),
    (10.5, DISCHARGING),
    (-11, CHARGING),
    (4000, DISCHARGING),
])
def test_battery_direction(power, expected):
    assert battery_direction(power) == expected


def test_is_active():
    assert is_active(11)
    assert is_active(-11)
    assert not is_active(10)
    assert not is_active(None)


def test_home_power_excludes_secondary():
    snapshot = EnergySnapshot(load_power=10000, secondary_devices=(
        SecondaryDevice(id="wc", state=ChargingState.CHARGING, power=7200),))
    assert home_power(snapshot) == 2800


def test_secondary_summary():
    charging = EnergySnapshot(secondary_devices=(SecondaryDevice(id="a", state=ChargingState.CHARGING, power=3680),))
    plugged = EnergySnapshot(secondary_devices=(SecondaryDevice(id="a", state=ChargingState.PLUGGED_IN),))
    assert secondary_summary(charging) == "3.680 kW"
    assert secondary_summary(charging, precision=1) == "3.7 kW"
    assert secondary_summary(plugged) == "Plugged in"
    assert secondary_summary(EnergySnapshot()) == "Idle"
    assert secondary_summary(None) == "Idle"


def test_solar_energy_prefers_meter():
    assert solar_energy_wh(EnergySnapshot(solar_energy_exported=500), 300) == 500
    assert solar_energy_wh(EnergySnapshot(), 300) == 300
    assert solar_energy_wh(EnergySnapshot(), None) == 0
