"""
Configuration and persistence for pyEnergyFlow

Settings are read from environment variables (a .env file is loaded by the
CLI), then overlaid with values persisted by a SettingsStore. The client
receives the Settings object explicitly and writes changes back through
the store it was given.

Environment Variables:

    Mode
        PE_LOGIN_MODE          - "local" (default) or "cloud"

    Local Gateway
        PE_HOST                - Gateway IP address or hostname
        PE_EMAIL               - Customer email (sent as the login email)
        PE_PASSWORD            - Customer password
        PE_WALL_CONNECTOR_HOST - Optional wall connector address for vitals

    Cloud (Fleet API)
        PE_CLIENT_ID           - OAuth client id
        PE_CLIENT_SECRET       - OAuth client secret
        PE_REDIRECT_URI        - Registered redirect URI
        PE_BASE_URL            - Fleet API base URL (default North America)
        PE_SITE_INDEX          - Index of the selected energy site (default 0)

    Polling and Network
        PE_TIMEZONE            - Site timezone (default "America/Los_Angeles")
        PE_TIMEOUT             - HTTP timeout in seconds (default 10)
        PE_REGION_TIMEOUT      - Per-region probe timeout in seconds (default 2)
        PE_FAST_POLL           - Live snapshot interval in seconds (default 10)
        PE_SLOW_POLL           - Daily energy / carbon interval in seconds (default 900)

    Enrichment
        PE_CARBON_TOKEN        - Electricity Maps API token
        PE_CARBON_ZONE         - Electricity Maps zone (e.g. AU-NSW)

    Persistence
        PE_STORE               - JSON file for persisted state (default ~/.pyenergyflow.json)
"""
import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from pyenergyflow.models import LoginMode

log = logging.getLogger(__name__)

DEFAULT_STORE = "~/.pyenergyflow.json"
DEFAULT_BASE_URL = "https://fleet-api.prd.na.vn.cloud.tesla.com"

# Written back through the store on change. Passwords and client secrets
# belong in secure storage and are never persisted here.
PERSISTED_FIELDS = (
    "login_mode",
    "host",
    "email",
    "wall_connector_host",
    "base_url",
    "base_url_resolved",
    "access_token",
    "refresh_token",
    "token_expires_at",
    "site_index",
)


class Settings(BaseSettings):
    login_mode: LoginMode = Field(default=LoginMode.LOCAL, alias="PE_LOGIN_MODE")

    # Local gateway
    host: Optional[str] = Field(default=None, alias="PE_HOST")
    email: Optional[str] = Field(default=None, alias="PE_EMAIL")
    password: Optional[str] = Field(default=None, alias="PE_PASSWORD")
    wall_connector_host: Optional[str] = Field(default=None, alias="PE_WALL_CONNECTOR_HOST")

    # Cloud
    client_id: Optional[str] = Field(default=None, alias="PE_CLIENT_ID")
    client_secret: Optional[str] = Field(default=None, alias="PE_CLIENT_SECRET")
    redirect_uri: Optional[str] = Field(default=None, alias="PE_REDIRECT_URI")
    base_url: str = Field(default=DEFAULT_BASE_URL, alias="PE_BASE_URL")
    base_url_resolved: bool = Field(default=False, alias="PE_BASE_URL_RESOLVED")
    access_token: Optional[str] = Field(default=None, alias="PE_ACCESS_TOKEN")
    refresh_token: Optional[str] = Field(default=None, alias="PE_REFRESH_TOKEN")
    token_expires_at: Optional[datetime] = Field(default=None, alias="PE_TOKEN_EXPIRES_AT")
    site_index: int = Field(default=0, alias="PE_SITE_INDEX")

    # Polling and network
    timezone: str = Field(default="America/Los_Angeles", alias="PE_TIMEZONE")
    timeout: float = Field(default=10, alias="PE_TIMEOUT")
    region_timeout: float = Field(default=2.0, alias="PE_REGION_TIMEOUT")
    fast_poll: float = Field(default=10, alias="PE_FAST_POLL")
    slow_poll: float = Field(default=900, alias="PE_SLOW_POLL")

    # Enrichment
    carbon_token: Optional[str] = Field(default=None, alias="PE_CARBON_TOKEN")
    carbon_zone: Optional[str] = Field(default=None, alias="PE_CARBON_ZONE")

    store_path: str = Field(default=DEFAULT_STORE, alias="PE_STORE")

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
        "populate_by_name": True,
        "extra": "ignore",
    }

    @classmethod
    def load(cls, store: "SettingsStore" = None, **overrides) -> "Settings":
        """Environment first, then persisted values, then explicit overrides"""
        values: Dict[str, Any] = {}
        if store is not None:
            values.update({k: v for k, v in store.load().items() if k in PERSISTED_FIELDS})
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def persisted(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", include=set(PERSISTED_FIELDS))


class SettingsStore:
    """Persistence port: read at startup, write on change"""

    def load(self) -> Dict[str, Any]:
        raise NotImplementedError

    def save(self, values: Dict[str, Any]) -> None:
        raise NotImplementedError


class MemoryStore(SettingsStore):
    def __init__(self, values: Dict[str, Any] = None):
        self.values = dict(values or {})
        self.saves = 0

    def load(self) -> Dict[str, Any]:
        return dict(self.values)

    def save(self, values: Dict[str, Any]) -> None:
        self.values.update(values)
        self.saves += 1


class JsonFileStore(SettingsStore):
    def __init__(self, path: str = DEFAULT_STORE):
        self.path = os.path.expanduser(path)

    def load(self) -> Dict[str, Any]:
        if not os.path.isfile(self.path):
            log.debug(f"Store file not found: {self.path}")
            return {}
        try:
            with open(self.path, "r") as f:
                values = json.load(f)
        except (OSError, ValueError) as exc:
            log.error(f"Unable to read store file {self.path}: {exc}")
            return {}
        log.debug(f"Loaded store file {self.path}")
        return values if isinstance(values, dict) else {}

    def save(self, values: Dict[str, Any]) -> None:
        merged = self.load()
        merged.update(values)
        try:
            with open(self.path, "w") as f:
                f.write(json.dumps(merged, indent=4))
        except OSError as exc:
            log.error(f"Unable to save store file {self.path}: {exc}")
