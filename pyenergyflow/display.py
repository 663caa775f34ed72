"""
Presentation helpers. Pure functions over snapshots, no UI types.
"""
from typing import Optional

from pyenergyflow.models import ChargingState, EnergySnapshot

# Flows within this many watts of zero are idle, not a direction
FLOW_HYSTERESIS_W = 10.0

CHARGING = "charging"
DISCHARGING = "discharging"
IDLE = "idle"


def is_active(power: Optional[float], margin: float = FLOW_HYSTERESIS_W) -> bool:
    return power is not None and abs(power) > margin


def battery_direction(power: Optional[float], margin: float = FLOW_HYSTERESIS_W) -> str:
    if power is None:
        return IDLE
    if power > margin:
        return DISCHARGING
    if power < -margin:
        return CHARGING
    return IDLE


def battery_count_string(snapshot: Optional[EnergySnapshot]) -> str:
    count = snapshot.battery_count if snapshot else None
    if not count:
        return ""
    return f" · {int(count)}x"


def home_power(snapshot: EnergySnapshot) -> float:
    """Home load without the power drawn by secondary devices"""
    return snapshot.load_power - snapshot.secondary_power


def secondary_summary(snapshot: Optional[EnergySnapshot], precision: int = 3) -> str:
    devices = snapshot.secondary_devices if snapshot else ()
    if any(d.state == ChargingState.CHARGING for d in devices):
        return f"{snapshot.secondary_power / 1000:.{precision}f} kW"
    if any(d.state == ChargingState.PLUGGED_IN for d in devices):
        return "Plugged in"
    return "Idle"


def solar_energy_wh(snapshot: EnergySnapshot, solar_energy_today_wh: Optional[float]) -> float:
    """Lifetime exported energy when the meter reports it, else today's total"""
    if snapshot.solar_energy_exported > 0:
        return snapshot.solar_energy_exported
    return solar_energy_today_wh or 0.0
