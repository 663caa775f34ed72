import logging
from typing import Union

import requests

from pyenergyflow.exceptions import DecodeError, InvalidConfigurationParameter, TransportError
from pyenergyflow.models import SecondaryDevice, WallConnectorVitals, decode

log = logging.getLogger(__name__)

VITALS_API = "/api/1/vitals"


class WallConnector:
    """Secondary device on its own host. Plain HTTP, no login."""

    def __init__(self, host: str, timeout: Union[int, float] = 10):
        if not host:
            raise InvalidConfigurationParameter("Wall connector host is not configured")
        self.host = host
        self.timeout = timeout

    def vitals(self) -> WallConnectorVitals:
        url = f"http://{self.host}{VITALS_API}"
        log.debug(f" -- wallconnector: Request {url}")
        try:
            r = requests.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            log.debug(f"ERROR Unable to connect to wall connector at {url}: {exc}")
            raise TransportError(f"Unable to connect to wall connector: {exc}") from exc
        if r.status_code != 200:
            raise TransportError(f"HTTP {r.status_code} from wall connector", status_code=r.status_code)
        try:
            payload = r.json()
        except ValueError as exc:
            raise DecodeError("Invalid JSON from wall connector") from exc
        return decode(WallConnectorVitals, payload, "wall connector vitals")

    def device(self) -> SecondaryDevice:
        return self.vitals().to_device(self.host)
