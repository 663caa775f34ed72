from unittest.mock import patch

import pytest
import requests

from pyenergyflow.exceptions import DecodeError, InvalidConfigurationParameter, TransportError
from pyenergyflow.local.wallconnector import WallConnector
from pyenergyflow.models import ChargingState


def test_requires_host():
    with pytest.raises(InvalidConfigurationParameter):
        WallConnector("")


@patch("pyenergyflow.local.wallconnector.requests.get")
def test_device_from_vitals(mock_get, make_response, vitals_payload):
    mock_get.return_value = make_response(200, vitals_payload)
    device = WallConnector("10.0.1.124", timeout=1).device()
    assert device.id == "10.0.1.124"
    assert device.state == ChargingState.CHARGING
    assert device.power == 3680
    assert mock_get.call_args[0][0] == "http://10.0.1.124/api/1/vitals"


@patch("pyenergyflow.local.wallconnector.requests.get")
def test_vitals_unreachable(mock_get):
    mock_get.side_effect = requests.exceptions.ConnectionError("no route")
    with pytest.raises(TransportError):
        WallConnector("10.0.1.124").vitals()


@patch("pyenergyflow.local.wallconnector.requests.get")
def test_vitals_http_error(mock_get, make_response):
    mock_get.return_value = make_response(404, {})
    with pytest.raises(TransportError):
        WallConnector("10.0.1.124").vitals()


@patch("pyenergyflow.local.wallconnector.requests.get")
def test_vitals_bad_payload(mock_get, make_response):
    mock_get.return_value = make_response(200, {"grid_v": "high"})
    with pytest.raises(DecodeError):
        WallConnector("10.0.1.124").vitals()
