"""Tests for Fleet API calls."""
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest
import requests

from pyenergyflow.exceptions import (AuthenticationError, DecodeError, InvalidConfigurationParameter,
                                     TransportError)
from pyenergyflow.fleetapi.fleetapi import FleetAPI
from pyenergyflow.models import EnergySite

BASE = "https://fleet-api.prd.na.vn.cloud.tesla.com"
PDT = timezone(timedelta(hours=-7))


@pytest.fixture
def token_provider():
    return Mock(return_value="token")


@pytest.fixture
def fleet(token_provider):
    return FleetAPI(BASE + "/", token_provider, timeout=1)


@patch("pyenergyflow.fleetapi.fleetapi.requests.get")
def test_get_live_status(mock_get, fleet, make_response, live_status_payload):
    mock_get.return_value = make_response(200, {"response": live_status_payload})
    assert fleet.get_live_status(429124) == live_status_payload
    args, kwargs = mock_get.call_args
    assert args[0] == f"{BASE}/api/1/energy_sites/429124/live_status"
    assert kwargs["headers"]["Authorization"] == "Bearer token"


@patch("pyenergyflow.fleetapi.fleetapi.requests.get")
def test_getsites_filters_vehicles(mock_get, fleet, make_response):
    mock_get.return_value = make_response(200, {"response": [
        {"id": 100021, "vin": "5YJ3000000NEXUS01"},
        {"energy_site_id": 429124, "site_name": "My Home"},
    ], "count": 2})
    assert fleet.getsites() == [EnergySite(id=429124, name="My Home")]


@patch("pyenergyflow.fleetapi.fleetapi.requests.get")
def test_calendar_history_params(mock_get, fleet, make_response):
    mock_get.return_value = make_response(200, {"response": {"period": "day", "time_series": []}})
    start = datetime(2024, 5, 1, 0, 0, 0, tzinfo=PDT)
    end = datetime(2024, 5, 1, 23, 59, 59, tzinfo=PDT)
    fleet.get_calendar_history(429124, "soe", start, end, "America/Los_Angeles")
    args, kwargs = mock_get.call_args
    assert args[0] == f"{BASE}/api/1/energy_sites/429124/calendar_history"
    assert kwargs["params"] == {
        "kind": "soe",
        "period": "day",
        "start_date": "2024-05-01T00:00:00-07:00",
        "end_date": "2024-05-01T23:59:59-07:00",
        "time_zone": "America/Los_Angeles",
    }


@patch("pyenergyflow.fleetapi.fleetapi.requests.get")
def test_unauthorized_retries_with_forced_refresh(mock_get, fleet, token_provider, make_response):
    mock_get.side_effect = [make_response(401, {}), make_response(200, {"response": {"site_name": "Home"}})]
    assert fleet.get_site_info(1) == {"site_name": "Home"}
    token_provider.assert_any_call(force_refresh=True)
    assert mock_get.call_count == 2


@patch("pyenergyflow.fleetapi.fleetapi.requests.get")
def test_unauthorized_twice_raises(mock_get, fleet, make_response):
    mock_get.return_value = make_response(401, {})
    with pytest.raises(AuthenticationError):
        fleet.get_site_info(1)
    assert mock_get.call_count == 2


@patch("pyenergyflow.fleetapi.fleetapi.requests.get")
def test_http_error(mock_get, fleet, make_response):
    mock_get.return_value = make_response(500, {"error": "internal"})
    with pytest.raises(TransportError) as excinfo:
        fleet.get_live_status(1)
    assert excinfo.value.status_code == 500


@patch("pyenergyflow.fleetapi.fleetapi.requests.get")
def test_timeout(mock_get, fleet):
    mock_get.side_effect = requests.exceptions.Timeout()
    with pytest.raises(TransportError, match="Timeout"):
        fleet.get_live_status(1)


@patch("pyenergyflow.fleetapi.fleetapi.requests.get")
def test_missing_response_key(mock_get, fleet, make_response):
    mock_get.return_value = make_response(200, {"error": None})
    with pytest.raises(DecodeError):
        fleet.get_live_status(1)


def test_site_required(fleet):
    with pytest.raises(InvalidConfigurationParameter):
        fleet.get_live_status(None)
