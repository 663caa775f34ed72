import json
import logging
from typing import Any, Optional, Union

import requests
import urllib3
from requests import Response

from pyenergyflow.exceptions import (AuthenticationError, DecodeError, InvalidConfigurationParameter, LoginError,
                                     TransportError)
from pyenergyflow.models import BatteryPercentage, EnergySnapshot, GridStatusReading, decode

# The gateway serves a self-signed certificate on the local network
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

log = logging.getLogger(__name__)

AUTH_COOKIE = "AuthCookie"
LOGIN_API = "/api/login/Basic"
AGGREGATES_API = "/api/meters/aggregates"
SOE_API = "/api/system_status/soe"
GRID_STATUS_API = "/api/system_status/grid_status"


class LocalGateway:
    """
    Cookie session against the gateway's local HTTPS API.

    Certificate verification is disabled for every request to this host
    only; the session is not shared with cloud calls.
    """

    def __init__(self, host: str, password: str, email: str = "", timeout: Union[int, float] = 10,
                 poolmaxsize: int = 10):
        if not host:
            raise InvalidConfigurationParameter("Gateway host is not configured")
        self.host = host
        self.password = password or ""
        self.email = email or ""
        self.timeout = timeout
        self.session = requests.Session()
        adapter = requests.adapters.HTTPAdapter(pool_maxsize=poolmaxsize)
        self.session.mount('https://', adapter)
        self.auth = {}

    @property
    def logged_in(self) -> bool:
        return AUTH_COOKIE in self.auth

    def login(self) -> None:
        url = f"https://{self.host}{LOGIN_API}"
        pload = {"username": "customer", "password": self.password,
                 "email": self.email, "force_sm_off": False}
        self.auth = {}
        try:
            r = self.session.post(url, json=pload, verify=False, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            log.debug(f"Unable to connect to gateway at {url}: {exc}")
            raise LoginError(f"Login failed: {exc}") from exc
        log.debug(f"login - {r.status_code}")
        cookie = r.cookies.get(AUTH_COOKIE)
        if not cookie:
            log.debug(f"login failed: no {AUTH_COOKIE} in response (status {r.status_code})")
            raise LoginError(f"Login failed: No {AUTH_COOKIE} received")
        self.auth = {AUTH_COOKIE: cookie}
        user_record = r.cookies.get("UserRecord")
        if user_record:
            self.auth["UserRecord"] = user_record

    def close_session(self) -> None:
        if self.logged_in:
            url = f"https://{self.host}/api/logout"
            try:
                self.session.get(url, cookies=self.auth, verify=False, timeout=self.timeout)
            except requests.exceptions.RequestException as exc:
                log.debug(f"logout failed - continuing: {exc}")
        self.auth = {}

    def poll(self, api: str) -> Any:
        """GET api from the gateway and return the decoded JSON body"""
        url = f"https://{self.host}{api}"
        log.debug(f" -- local: Request gateway for {api}")
        try:
            r: Response = self.session.get(url, cookies=self.auth, verify=False, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            log.debug(f"ERROR Timeout waiting for gateway API {url}")
            raise TransportError(f"Timeout waiting for {api}") from exc
        except requests.exceptions.RequestException as exc:
            log.debug(f"ERROR Unable to connect to gateway at {url}: {exc}")
            raise TransportError(f"Unable to connect to gateway: {exc}") from exc
        if r.status_code in (401, 403):
            # Session expired - force a new login on the next call
            self.auth = {}
            raise AuthenticationError(f"Session rejected by gateway ({r.status_code}) at {api}")
        if r.status_code != 200:
            log.error(f"Unhandled HTTP response code {r.status_code} at {url}")
            raise TransportError(f"HTTP {r.status_code} from {api}", status_code=r.status_code)
        try:
            return json.loads(r.text)
        except ValueError as exc:
            log.error(f"Unable to parse payload '{r.text}' as JSON: {exc}")
            raise DecodeError(f"Invalid JSON from {api}") from exc

    def aggregates(self) -> EnergySnapshot:
        return EnergySnapshot.from_aggregates(self.poll(AGGREGATES_API))

    def battery_percentage(self) -> float:
        """{"percentage": 69.1675560298826}"""
        payload = self.poll(SOE_API)
        return decode(BatteryPercentage, payload, "battery percentage").percentage

    def grid_status(self) -> Optional[str]:
        """{"grid_status": "SystemGridConnected", "grid_services_active": false}"""
        payload = self.poll(GRID_STATUS_API)
        return decode(GridStatusReading, payload, "grid status").grid_status
