"""Tests for the local gateway session."""
from unittest.mock import MagicMock, patch

import pytest
import requests

from pyenergyflow.exceptions import (AuthenticationError, DecodeError, InvalidConfigurationParameter, LoginError,
                                     TransportError)
from pyenergyflow.local.gateway import AGGREGATES_API, LOGIN_API, LocalGateway


@pytest.fixture
def gateway():
    with patch("pyenergyflow.local.gateway.requests.Session") as session_cls:
        session_cls.return_value = MagicMock()
        gw = LocalGateway("10.0.1.123", "password", email="email@example.com", timeout=1)
        yield gw


def test_requires_host():
    with pytest.raises(InvalidConfigurationParameter):
        LocalGateway("", "password")


def test_login_sets_cookie(gateway, make_response):
    gateway.session.post.return_value = make_response(200, {}, cookies={"AuthCookie": "abc", "UserRecord": "rec"})
    gateway.login()
    assert gateway.logged_in
    assert gateway.auth == {"AuthCookie": "abc", "UserRecord": "rec"}
    args, kwargs = gateway.session.post.call_args
    assert args[0] == f"https://10.0.1.123{LOGIN_API}"
    assert kwargs["json"] == {"username": "customer", "password": "password",
                              "email": "email@example.com", "force_sm_off": False}
    assert kwargs["verify"] is False


def test_login_without_cookie_fails(gateway, make_response):
    gateway.session.post.return_value = make_response(200, {})
    with pytest.raises(LoginError, match="No AuthCookie received"):
        gateway.login()
    assert not gateway.logged_in


def test_login_transport_error(gateway):
    gateway.session.post.side_effect = requests.exceptions.ConnectionError("unreachable")
    with pytest.raises(LoginError, match="Login failed"):
        gateway.login()


def test_poll_returns_json(gateway, make_response, aggregates_payload):
    gateway.auth = {"AuthCookie": "abc"}
    gateway.session.get.return_value = make_response(200, aggregates_payload)
    snapshot = gateway.aggregates()
    assert snapshot.solar_power == 5000
    args, kwargs = gateway.session.get.call_args
    assert args[0] == f"https://10.0.1.123{AGGREGATES_API}"
    assert kwargs["cookies"] == {"AuthCookie": "abc"}


def test_battery_percentage_and_grid_status(gateway, make_response):
    gateway.session.get.side_effect = [
        make_response(200, {"percentage": 69.5}),
        make_response(200, {"grid_status": "SystemGridConnected", "grid_services_active": False}),
    ]
    assert gateway.battery_percentage() == 69.5
    assert gateway.grid_status() == "SystemGridConnected"


def test_poll_unauthorized_drops_session(gateway, make_response):
    gateway.auth = {"AuthCookie": "abc"}
    gateway.session.get.return_value = make_response(401, {"code": 401, "error": "bad credentials"})
    with pytest.raises(AuthenticationError):
        gateway.poll(AGGREGATES_API)
    assert not gateway.logged_in


def test_poll_http_error(gateway, make_response):
    gateway.session.get.return_value = make_response(502, {})
    with pytest.raises(TransportError) as excinfo:
        gateway.poll(AGGREGATES_API)
    assert excinfo.value.status_code == 502


def test_poll_timeout(gateway):
    gateway.session.get.side_effect = requests.exceptions.Timeout()
    with pytest.raises(TransportError, match="Timeout"):
        gateway.poll(AGGREGATES_API)


def test_poll_invalid_json(gateway, make_response):
    gateway.session.get.return_value = make_response(200, text="<html>maintenance</html>")
    with pytest.raises(DecodeError):
        gateway.poll(AGGREGATES_API)


def test_battery_percentage_unexpected_payload(gateway, make_response):
    gateway.session.get.return_value = make_response(200, {"soe": 50})
    with pytest.raises(DecodeError):
        gateway.battery_percentage()


def test_close_session(gateway, make_response):
    gateway.auth = {"AuthCookie": "abc"}
    gateway.session.get.return_value = make_response(200, {})
    gateway.close_session()
    assert not gateway.logged_in
    assert gateway.session.get.call_args[0][0] == "https://10.0.1.123/api/logout"
