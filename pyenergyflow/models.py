"""
Data model for energy-flow readings.

All readings are pydantic models. Snapshots are frozen: every update
builds a new EnergySnapshot that replaces the previous one wholesale.

Power sign conventions follow the gateway:
    battery  positive = discharging, negative = charging
    site     positive = importing from grid, negative = exporting
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pyenergyflow.exceptions import DecodeError

log = logging.getLogger(__name__)

# Grid status strings that mean the site is running without the utility grid
OFF_GRID_STATUSES = ("SystemIslandedActive", "Inactive")

CONNECTED_STATUSES = ("SystemGridConnected", "SystemTransitionToGrid", "Active")
ISLANDED_STATUSES = ("SystemIslandedActive", "SystemIslandedReady", "SystemTransitionToIsland",
                     "SystemMicroGridFaulted", "SystemWaitForUser")

# Cloud wall_connector_state codes
WALL_CONNECTOR_CHARGING = 1
WALL_CONNECTOR_PLUGGED_IN = 4


class LoginMode(str, Enum):
    LOCAL = "local"
    CLOUD = "cloud"


class GridState(str, Enum):
    CONNECTED = "connected"
    ISLANDED = "islanded"
    INACTIVE = "inactive"
    UNKNOWN = "unknown"


class ChargingState(str, Enum):
    CHARGING = "charging"
    PLUGGED_IN = "plugged_in"
    IDLE = "idle"

    @classmethod
    def from_code(cls, code: Optional[float]) -> "ChargingState":
        if code == WALL_CONNECTOR_CHARGING:
            return cls.CHARGING
        if code == WALL_CONNECTOR_PLUGGED_IN:
            return cls.PLUGGED_IN
        return cls.IDLE


def is_off_grid(status: Optional[str]) -> bool:
    return status in OFF_GRID_STATUSES


def grid_state(status: Optional[str]) -> GridState:
    if status == "Inactive":
        return GridState.INACTIVE
    if status in ISLANDED_STATUSES:
        return GridState.ISLANDED
    if status in CONNECTED_STATUSES:
        return GridState.CONNECTED
    return GridState.UNKNOWN


def decode(model, payload: Any, what: str):
    """Validate payload into model, raising DecodeError on schema mismatch"""
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        log.debug(f"Unable to decode {what} from '{payload}': {exc}")
        raise DecodeError(f"Unexpected {what} payload: {exc.error_count()} validation error(s)") from exc


class SecondaryDevice(BaseModel):
    """One secondary device reading (a wall connector)"""
    model_config = ConfigDict(frozen=True)

    id: str
    state: ChargingState = ChargingState.IDLE
    power: float = 0.0


class WallConnectorVitals(BaseModel):
    """
    Payload of GET /api/1/vitals on a wall connector

    {
        'contactor_closed': False,
        'vehicle_connected': True,
        'session_s': 0,
        'grid_v': 230.1,
        'grid_hz': 49.928,
        'vehicle_current_a': 0.1,
        'uptime_s': 51020,
        'evse_state': 4,
        ...
    }
    """
    contactor_closed: bool = False
    vehicle_connected: bool = False
    session_s: float = 0
    grid_v: float = 0
    grid_hz: float = 0
    vehicle_current_a: float = 0
    uptime_s: float = 0
    evse_state: Optional[int] = None

    @property
    def power(self) -> float:
        # Apparent power, no power factor correction
        return self.grid_v * self.vehicle_current_a

    @property
    def state(self) -> ChargingState:
        if self.contactor_closed:
            return ChargingState.CHARGING
        if self.vehicle_connected:
            return ChargingState.PLUGGED_IN
        return ChargingState.IDLE

    def to_device(self, device_id: str) -> SecondaryDevice:
        return SecondaryDevice(id=device_id, state=self.state, power=self.power)


class _WallConnectorStatus(BaseModel):
    din: str = ""
    wall_connector_state: Optional[float] = None
    wall_connector_power: float = 0.0

    def to_device(self) -> SecondaryDevice:
        return SecondaryDevice(id=self.din, state=ChargingState.from_code(self.wall_connector_state),
                               power=self.wall_connector_power)


class _MeterReading(BaseModel):
    instant_power: float
    energy_exported: float = 0.0
    energy_imported: float = 0.0
    num_meters_aggregated: Optional[int] = None


class _Aggregates(BaseModel):
    battery: _MeterReading
    load: _MeterReading
    solar: _MeterReading
    site: _MeterReading
    wall_connectors: List[_WallConnectorStatus] = Field(default_factory=list)


class _LiveStatus(BaseModel):
    solar_power: float = 0.0
    battery_power: float = 0.0
    load_power: float = 0.0
    grid_power: float = 0.0
    percentage_charged: Optional[float] = None
    grid_status: Optional[str] = None
    island_status: Optional[str] = None
    timestamp: Optional[datetime] = None
    wall_connectors: List[_WallConnectorStatus] = Field(default_factory=list)


class BatteryPercentage(BaseModel):
    percentage: float


class GridStatusReading(BaseModel):
    grid_status: str


class EnergySnapshot(BaseModel):
    """One point-in-time read of all live power figures for a site"""
    model_config = ConfigDict(frozen=True)

    battery_power: float = 0.0
    battery_count: Optional[int] = None
    load_power: float = 0.0
    solar_power: float = 0.0
    solar_energy_exported: float = 0.0
    site_power: float = 0.0
    battery_percentage: Optional[float] = None
    grid_status: Optional[str] = None
    secondary_devices: Tuple[SecondaryDevice, ...] = ()
    timestamp: Optional[datetime] = None

    @property
    def is_off_grid(self) -> bool:
        return is_off_grid(self.grid_status)

    @property
    def grid_state(self) -> GridState:
        return grid_state(self.grid_status)

    @property
    def secondary_power(self) -> float:
        return sum(d.power for d in self.secondary_devices)

    @classmethod
    def from_aggregates(cls, payload: Dict[str, Any], timestamp: datetime = None) -> "EnergySnapshot":
        """
        Decode GET /api/meters/aggregates

        {
            'site': {'instant_power': 1000, 'energy_exported': 0, ...},
            'battery': {'instant_power': -500, 'num_meters_aggregated': 2, ...},
            'load': {'instant_power': 1500, ...},
            'solar': {'instant_power': 2000, 'energy_exported': 123456, ...}
        }
        """
        agg = decode(_Aggregates, payload, "meter aggregates")
        return cls(
            battery_power=agg.battery.instant_power,
            battery_count=agg.battery.num_meters_aggregated,
            load_power=agg.load.instant_power,
            solar_power=agg.solar.instant_power,
            solar_energy_exported=agg.solar.energy_exported,
            site_power=agg.site.instant_power,
            secondary_devices=tuple(w.to_device() for w in agg.wall_connectors),
            timestamp=timestamp,
        )

    @classmethod
    def from_live_status(cls, payload: Dict[str, Any], battery_count: int = None,
                         timestamp: datetime = None) -> "EnergySnapshot":
        """
        Decode the response of GET /api/1/energy_sites/{id}/live_status

        {
            'solar_power': 0,
            'percentage_charged': 55.164177150990625,
            'battery_power': 4080,
            'load_power': 4080,
            'grid_status': 'Active',
            'grid_power': 0,
            'island_status': 'on_grid',
            'timestamp': '2024-05-11T22:43:20-07:00',
            'wall_connectors': [{'din': '...', 'wall_connector_state': 2, 'wall_connector_power': 0}]
        }
        """
        live = decode(_LiveStatus, payload, "live status")
        return cls(
            battery_power=live.battery_power,
            battery_count=battery_count,
            load_power=live.load_power,
            solar_power=live.solar_power,
            site_power=live.grid_power,
            battery_percentage=live.percentage_charged,
            grid_status=live.grid_status,
            secondary_devices=tuple(w.to_device() for w in live.wall_connectors),
            timestamp=live.timestamp or timestamp,
        )


class EnergySite(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str = "Unknown"

    @classmethod
    def from_products(cls, products: List[Dict[str, Any]]) -> List["EnergySite"]:
        """Keep only energy products (vehicles have no energy_site_id)"""
        sites = []
        for product in products or []:
            if not isinstance(product, dict) or product.get("energy_site_id") is None:
                continue
            sites.append(cls(id=product["energy_site_id"], name=product.get("site_name") or "Unknown"))
        return sites


class SiteInfo(BaseModel):
    """Static site metadata from GET /api/1/energy_sites/{id}/site_info"""
    model_config = ConfigDict(frozen=True)

    site_name: Optional[str] = None
    battery_count: Optional[int] = None
    version: Optional[str] = None
    installation_date: Optional[str] = None

    @property
    def firmware_version(self) -> Optional[str]:
        return self.version


class GridIntensity(BaseModel):
    model_config = ConfigDict(frozen=True)

    carbon_intensity: Optional[int] = None
    fossil_fuel_percentage: Optional[float] = None

    @property
    def renewables_percentage(self) -> Optional[float]:
        if self.fossil_fuel_percentage is None:
            return None
        return max(0.0, min(100.0, 100.0 - self.fossil_fuel_percentage))
