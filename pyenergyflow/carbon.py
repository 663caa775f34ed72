"""
Grid carbon intensity from Electricity Maps.

Polled on the slow cadence. Both endpoints take the grid zone as a query
parameter and the API token in the "auth-token" header.

    GET /v3/carbon-intensity/latest?zone=AU-NSW
        {'zone': 'AU-NSW', 'carbonIntensity': 612, 'datetime': '...', ...}

    GET /v3/power-breakdown/latest?zone=AU-NSW
        {'zone': 'AU-NSW', 'fossilFreePercentage': 28, 'renewablePercentage': 27, ...}
"""
import logging
from typing import Any, Dict, Optional, Union

import requests

from pyenergyflow.exceptions import DecodeError, InvalidConfigurationParameter, TransportError
from pyenergyflow.models import GridIntensity

log = logging.getLogger(__name__)

ELECTRICITY_MAPS_URL = "https://api.electricitymap.org/v3"
CARBON_INTENSITY_API = "carbon-intensity/latest"
POWER_BREAKDOWN_API = "power-breakdown/latest"


class CarbonIntensity:
    def __init__(self, token: str, zone: str, timeout: Union[int, float] = 10,
                 base_url: str = ELECTRICITY_MAPS_URL):
        if not token or not zone:
            raise InvalidConfigurationParameter("Electricity Maps token and zone are required")
        self.token = token
        self.zone = zone
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    def poll(self, api: str) -> Dict[str, Any]:
        url = f"{self.base_url}/{api}"
        log.debug(f"GET: {url} zone={self.zone}")
        try:
            r = requests.get(url, params={"zone": self.zone}, headers={"auth-token": self.token},
                             timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"Unable to reach Electricity Maps: {exc}") from exc
        if r.status_code != 200:
            log.error(f"Code {r.status_code}: {r.text}")
            raise TransportError(f"HTTP {r.status_code} from {api}", status_code=r.status_code)
        try:
            payload = r.json()
        except ValueError as exc:
            raise DecodeError(f"Invalid JSON from {api}") from exc
        if not isinstance(payload, dict):
            raise DecodeError(f"Unexpected {api} payload")
        return payload

    def carbon_intensity(self) -> Optional[int]:
        value = self.poll(CARBON_INTENSITY_API).get("carbonIntensity")
        return int(round(value)) if isinstance(value, (int, float)) else None

    def fossil_fuel_percentage(self) -> Optional[float]:
        value = self.poll(POWER_BREAKDOWN_API).get("fossilFreePercentage")
        return 100.0 - value if isinstance(value, (int, float)) else None

    def get(self) -> GridIntensity:
        return GridIntensity(carbon_intensity=self.carbon_intensity(),
                             fossil_fuel_percentage=self.fossil_fuel_percentage())
