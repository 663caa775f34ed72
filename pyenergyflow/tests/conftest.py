"""Pytest configuration and fixtures."""
import json
from datetime import datetime
from unittest.mock import Mock

import pytest
from dateutil import tz

from pyenergyflow.config import MemoryStore, Settings

PACIFIC = tz.gettz("America/Los_Angeles")


@pytest.fixture
def now():
    return datetime(2024, 5, 12, 15, 30, 0, tzinfo=PACIFIC)


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture
def aggregates_payload():
    return {
        "site": {"instant_power": 100, "energy_exported": 0, "energy_imported": 1500},
        "battery": {"instant_power": -2000, "num_meters_aggregated": 2},
        "load": {"instant_power": 3100},
        "solar": {"instant_power": 5000, "energy_exported": 123456},
    }


@pytest.fixture
def live_status_payload():
    return {
        "solar_power": 3500,
        "percentage_charged": 55.5,
        "battery_power": -1200,
        "load_power": 2300,
        "grid_status": "Active",
        "grid_power": 0,
        "island_status": "on_grid",
        "timestamp": "2024-05-12T15:29:55-07:00",
        "wall_connectors": [
            {"din": "1457768-02-G--PGT1234", "wall_connector_state": 1, "wall_connector_power": 7200},
        ],
    }


@pytest.fixture
def vitals_payload():
    return {
        "contactor_closed": True,
        "vehicle_connected": True,
        "session_s": 1200,
        "grid_v": 230.0,
        "grid_hz": 50.0,
        "vehicle_current_a": 16.0,
        "uptime_s": 51020,
        "evse_state": 11,
    }


@pytest.fixture
def energy_history_payload():
    return {
        "period": "day",
        "time_series": [
            {
                "timestamp": "2024-05-12T01:00:00-07:00",
                "solar_energy_exported": 0,
                "battery_energy_exported": 400,
                "battery_energy_imported_from_grid": 0,
                "battery_energy_imported_from_solar": 0,
            },
            {
                "timestamp": "2024-05-12T11:00:00-07:00",
                "solar_energy_exported": 2500,
                "battery_energy_exported": 0,
                "battery_energy_imported_from_grid": 0,
                "battery_energy_imported_from_solar": 1500,
            },
            {
                "timestamp": "2024-05-12T03:00:00-07:00",
                "solar_energy_exported": 0,
                "battery_energy_exported": 0,
                "battery_energy_imported_from_grid": 800,
                "battery_energy_imported_from_solar": 0,
            },
        ],
    }


@pytest.fixture
def soe_history_payload():
    return {
        "period": "day",
        "time_series": [
            {"timestamp": "2024-05-12T00:00:00-07:00", "soe": 80.0},
            {"timestamp": "2024-05-12T00:15:00-07:00", "soe": 79.0},
        ],
    }


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def local_settings():
    return Settings(login_mode="local", host="10.0.1.123", email="email@example.com", password="password",
                    timeout=1)


@pytest.fixture
def cloud_settings():
    return Settings(login_mode="cloud", client_id="client", client_secret="secret",
                    redirect_uri="https://example.com/callback", access_token="access", refresh_token="refresh",
                    base_url_resolved=True, timeout=1)


def mock_response(status_code=200, json_data=None, cookies=None, text=None):
    """Build a requests.Response stand-in"""
    response = Mock()
    response.status_code = status_code
    response.cookies = cookies or {}
    if json_data is None and text is not None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
        response.text = text
    else:
        response.json.return_value = json_data
        response.text = text if text is not None else json.dumps(json_data)
    return response


@pytest.fixture
def make_response():
    return mock_response
