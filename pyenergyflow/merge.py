"""
Reconcile secondary device readings with the primary snapshot.

Local mode fetches the gateway and the wall connector separately, so the
two results can land in either order. merge_secondary() is applied to
whatever primary snapshot is current when the secondary result arrives.
"""
from typing import Iterable, Optional

from pyenergyflow.models import EnergySnapshot, SecondaryDevice


def merge_secondary(primary: Optional[EnergySnapshot],
                    devices: Iterable[SecondaryDevice]) -> Optional[EnergySnapshot]:
    """Return primary with only its secondary device list replaced"""
    if primary is None:
        return None
    return primary.model_copy(update={"secondary_devices": tuple(devices)})


def carry_forward(new: EnergySnapshot, previous: Optional[EnergySnapshot]) -> EnergySnapshot:
    """
    Fill the fields a local aggregates read does not carry (battery
    percentage, grid status) from the previous snapshot. Secondary devices
    are not carried: they come from their own reads, see merge_secondary().
    """
    if previous is None:
        return new
    update = {}
    if new.battery_percentage is None:
        update["battery_percentage"] = previous.battery_percentage
    if new.grid_status is None:
        update["grid_status"] = previous.grid_status
    if not update:
        return new
    return new.model_copy(update=update)
