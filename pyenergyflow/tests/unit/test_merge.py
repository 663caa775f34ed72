from pyenergyflow.merge import carry_forward, merge_secondary
from pyenergyflow.models import ChargingState, EnergySnapshot, SecondaryDevice

CHARGER = SecondaryDevice(id="10.0.1.124", state=ChargingState.CHARGING, power=3680)


def test_merge_secondary_replaces_only_devices():
    primary = EnergySnapshot(solar_power=5000, battery_percentage=80, grid_status="SystemGridConnected")
    merged = merge_secondary(primary, [CHARGER])
    assert merged.secondary_devices == (CHARGER,)
    assert merged.solar_power == 5000
    assert merged.battery_percentage == 80
    assert merged.grid_status == "SystemGridConnected"
    assert primary.secondary_devices == ()


def test_merge_secondary_without_primary():
    assert merge_secondary(None, [CHARGER]) is None


def test_carry_forward_fills_missing_fields():
    previous = EnergySnapshot(battery_percentage=55, grid_status="SystemIslandedActive", secondary_devices=(CHARGER,))
    new = EnergySnapshot(solar_power=1000)
    result = carry_forward(new, previous)
    assert result.solar_power == 1000
    assert result.battery_percentage == 55
    assert result.grid_status == "SystemIslandedActive"


def test_carry_forward_keeps_new_values():
    previous = EnergySnapshot(battery_percentage=55, grid_status="SystemIslandedActive")
    new = EnergySnapshot(battery_percentage=60, grid_status="SystemGridConnected")
    assert carry_forward(new, previous) is new
    assert carry_forward(new, None) is new


def test_carry_forward_does_not_copy_devices():
    previous = EnergySnapshot(battery_percentage=55, grid_status="SystemGridConnected", secondary_devices=(CHARGER,))
    new = EnergySnapshot(solar_power=1000)
    assert carry_forward(new, previous).secondary_devices == ()
