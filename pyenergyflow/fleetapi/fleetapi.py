# pyEnergyFlow - Fleet API Class
# -*- coding: utf-8 -*-
"""
 Fleet API Class

 Read-only access to energy site data on the Fleet API. Every request
 carries "Authorization: Bearer <token>" from the token provider, which
 refreshes or re-authorizes as needed (see fleetapi.auth).

 Class:
    FleetAPI - Fleet API Class

 Functions:
    poll(api, params) - GET api and return the JSON body
    get_products() - get products assigned to the account
    getsites() - get energy sites
    get_live_status(site_id) - get the current power information for the site
    get_site_info(site_id) - get site info
    get_calendar_history(site_id, kind, start, end, time_zone) - get energy or soe history
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import requests

from pyenergyflow.exceptions import (AuthenticationError, DecodeError, InvalidConfigurationParameter,
                                     TransportError)
from pyenergyflow.history import format_timestamp
from pyenergyflow.models import EnergySite

log = logging.getLogger(__name__)

API_TIMEOUT = 10  # Time in seconds to wait for Fleet API response


class FleetAPI:
    def __init__(self, base_url: str, token_provider: Callable[..., str], timeout: float = API_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.timeout = timeout

    @staticmethod
    def keyval(data, key):
        return data.get(key) if isinstance(data, dict) and key else None

    def poll(self, api: str, params: Dict[str, Any] = None, recursive: bool = False) -> Any:
        url = f"{self.base_url}/{api}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": "Bearer " + self.token_provider(),
        }
        log.debug(f"GET: {url} {params or ''}")
        try:
            response = requests.get(url, headers=headers, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            log.error(f"Timeout error polling {url}")
            raise TransportError(f"Timeout polling {api}") from exc
        except requests.exceptions.RequestException as exc:
            log.error(f"Error polling {url}: {exc}")
            raise TransportError(f"Unable to reach Fleet API: {exc}") from exc
        if response.status_code == 401 and not recursive:
            # Token rejected - refresh token and try again
            self.token_provider(force_refresh=True)
            return self.poll(api, params, recursive=True)
        if response.status_code == 401:
            log.error("Token expired, refresh token failed")
            raise AuthenticationError("Fleet API rejected the access token")
        if response.status_code != 200:
            log.error(f"Code {response.status_code}: {response.text}")
            raise TransportError(f"HTTP {response.status_code} from {api}", status_code=response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise DecodeError(f"Invalid JSON from {api}") from exc

    def _response(self, api: str, params: Dict[str, Any] = None) -> Any:
        payload = self.poll(api, params)
        if not isinstance(payload, dict) or "response" not in payload:
            raise DecodeError(f"Missing 'response' in {api} payload")
        return payload["response"]

    @staticmethod
    def _site(site_id) -> str:
        if site_id is None or site_id == "":
            raise InvalidConfigurationParameter("No energy site selected")
        return str(site_id)

    def get_products(self) -> List[Dict[str, Any]]:
        """
        {
            "response": [
                {"id": 100021, "vin": "5YJ3000000NEXUS01", "display_name": "Owned", ...},
                {
                    "energy_site_id": 429124,
                    "resource_type": "battery",
                    "site_name": "My Home",
                    "gateway_id": "1112345-00-E--TG0123456789",
                    "percentage_charged": 90,
                    "battery_power": 1000
                }
            ],
            "count": 2
        }
        """
        products = self._response("api/1/products")
        if not isinstance(products, list):
            raise DecodeError("Unexpected products payload")
        return products

    def getsites(self) -> List[EnergySite]:
        return EnergySite.from_products(self.get_products())

    def get_live_status(self, site_id) -> Dict[str, Any]:
        return self._response(f"api/1/energy_sites/{self._site(site_id)}/live_status")

    def get_site_info(self, site_id) -> Dict[str, Any]:
        """
        {
            'id': '1234000-00-E--TG12345678904G',
            'site_name': 'TeslaEnergyGateway',
            'installation_date': '2021-09-25T15:53:47-07:00',
            'version': '24.4.00fe780c9',
            'battery_count': 2,
            ...
        }
        """
        return self._response(f"api/1/energy_sites/{self._site(site_id)}/site_info")

    def get_calendar_history(self, site_id, kind: str, start: datetime, end: datetime,
                             time_zone: Optional[str] = None, period: str = "day") -> Dict[str, Any]:
        """
        kind: energy, soe
        period: day, week, month, year, lifetime
        start/end: sent as RFC3339 with offset (2024-05-01T00:00:00-07:00)
        """
        params = {
            "kind": kind,
            "period": period,
            "start_date": format_timestamp(start),
            "end_date": format_timestamp(end),
        }
        if time_zone:
            params["time_zone"] = time_zone
        return self._response(f"api/1/energy_sites/{self._site(site_id)}/calendar_history", params)
