# pyEnergyFlow - Fleet API Session Manager
# -*- coding: utf-8 -*-
"""
 OAuth2 authorization code flow (client secret, no PKCE) and refresh token
 handling for the Fleet API.

 States:
    UNAUTHENTICATED -> AUTHORIZING -> EXCHANGING -> READY
    READY -> REFRESHING -> READY
    REFRESHING -> AUTHORIZING   (refresh failed - re-authorize)
    AUTHORIZING / EXCHANGING -> UNAUTHENTICATED   (error raised)

 The interactive part of the flow is an injected authorizer callable: it
 receives the authorize URL and returns the redirect URL the browser was
 sent to (or the bare code). The CLI prompts on the console; an embedding
 application would open a web view.
"""
import logging
import secrets
import threading
import urllib.parse
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

import requests
from pydantic import BaseModel

from pyenergyflow.exceptions import (AuthorizationError, InvalidConfigurationParameter, TokenRefreshError)

log = logging.getLogger(__name__)

AUTHORIZE_URL = "https://auth.tesla.com/oauth2/v3/authorize"
TOKEN_URL = "https://fleet-auth.prd.vn.cloud.tesla.com/oauth2/v3/token"
SCOPE = "openid offline_access energy_device_data"
AUTH_TIMEOUT = 15     # Time in seconds to wait for the code exchange
REFRESH_TIMEOUT = 60  # Time in seconds to wait for refresh token response
MAX_AUDIENCE_RETRIES = 1


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHORIZING = "authorizing"
    EXCHANGING = "exchanging"
    READY = "ready"
    REFRESHING = "refreshing"


class SessionToken(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    def expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    @classmethod
    def from_response(cls, data: dict, now: datetime, previous: "SessionToken" = None) -> "SessionToken":
        expires_in = data.get("expires_in")
        refresh = data.get("refresh_token") or (previous.refresh_token if previous else None)
        return cls(access_token=data["access_token"], refresh_token=refresh,
                   expires_at=now + timedelta(seconds=int(expires_in)) if expires_in else None)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _short(token: Optional[str]) -> str:
    return f"{token[:10]}..." if token else "None"


class FleetAuth:
    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, audience: str,
                 authorizer: Callable[[str], str] = None, token: SessionToken = None,
                 on_token: Callable[[Optional[SessionToken], str], None] = None,
                 timeout: float = AUTH_TIMEOUT, clock: Callable[[], datetime] = _utcnow):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.audience = audience
        self.authorizer = authorizer
        self.token = token
        self.on_token = on_token  # persistence hook: (token, audience)
        self.timeout = timeout
        self.clock = clock
        self.state = SessionState.READY if token else SessionState.UNAUTHENTICATED
        self.audience_retries = 0
        self._lock = threading.RLock()

    def authorize_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "locale": "en-US",
            "prompt": "login",
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": SCOPE,
            "state": state,
        }
        return f"{AUTHORIZE_URL}?{urllib.parse.urlencode(params, quote_via=urllib.parse.quote)}"

    @staticmethod
    def parse_callback(callback: Optional[str], expected_state: str = None) -> str:
        """Return the code from a redirect URL, or the value itself if it is a bare code"""
        if not callback:
            raise AuthorizationError("Authorization code missing")
        callback = callback.strip()
        if "://" not in callback and "=" not in callback:
            return callback
        query = urllib.parse.urlparse(callback).query if "://" in callback else callback.lstrip("?")
        params = urllib.parse.parse_qs(query)
        if "error" in params:
            raise AuthorizationError(f"Authorization denied: {params['error'][0]}")
        returned_state = params.get("state", [None])[0]
        if expected_state and returned_state and returned_state != expected_state:
            raise AuthorizationError("Authorization state mismatch")
        code = params.get("code", [None])[0]
        if not code:
            raise AuthorizationError("Authorization code missing")
        return code

    def login(self) -> SessionToken:
        """Run the full authorization code flow"""
        with self._lock:
            if not self.client_id or not self.redirect_uri:
                raise InvalidConfigurationParameter("Fleet API client id and redirect URI are required")
            if self.authorizer is None:
                self.state = SessionState.UNAUTHENTICATED
                raise AuthorizationError("No authorization handler available to sign in")
            self.state = SessionState.AUTHORIZING
            nonce = secrets.token_urlsafe(32)
            url = self.authorize_url(nonce)
            log.debug(f"Authorizing via {url}")
            try:
                code = self.parse_callback(self.authorizer(url), nonce)
            except AuthorizationError:
                self.state = SessionState.UNAUTHENTICATED
                raise
            except Exception as exc:
                self.state = SessionState.UNAUTHENTICATED
                raise AuthorizationError(f"Authorization failed: {exc}") from exc
            self.state = SessionState.EXCHANGING
            try:
                token = self.exchange_code(code)
            except Exception:
                self.state = SessionState.UNAUTHENTICATED
                raise
            self._set_token(token)
            return token

    def exchange_code(self, code: str) -> SessionToken:
        data = {
            'grant_type': 'authorization_code',
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'code': code,
            'audience': self.audience,
            'redirect_uri': self.redirect_uri,
            'scope': SCOPE,
        }
        return self._token_request(data, AuthorizationError, self.timeout)

    def refresh(self) -> SessionToken:
        with self._lock:
            self.state = SessionState.REFRESHING
            if not self.token or not self.token.refresh_token:
                self.state = SessionState.AUTHORIZING
                raise TokenRefreshError("No refresh token stored")
            log.info("Token expired, refreshing token")
            data = {
                'grant_type': 'refresh_token',
                'client_id': self.client_id,
                'refresh_token': self.token.refresh_token,
            }
            try:
                token = self._token_request(data, TokenRefreshError, REFRESH_TIMEOUT)
            except TokenRefreshError:
                self.state = SessionState.AUTHORIZING
                raise
            log.info("Token refreshed - saving.")
            self._set_token(token)
            return token

    def access_token(self, force_refresh: bool = False) -> str:
        """Return a usable access token, refreshing or re-authorizing as needed"""
        with self._lock:
            if self.token is None:
                return self.login().access_token
            if force_refresh or self.token.expired(self.clock()):
                try:
                    self.refresh()
                except TokenRefreshError as exc:
                    log.info(f"Unable to refresh token ({exc}) - re-authorizing")
                    self.state = SessionState.AUTHORIZING
                    self.login()
            return self.token.access_token

    def realign_audience(self, base_url: str) -> bool:
        """
        Tokens are minted for one regional audience. If the account lives in
        another region, drop the tokens and authorize again for that region,
        once per session.
        """
        with self._lock:
            if not base_url or base_url == self.audience:
                return False
            if self.audience_retries >= MAX_AUDIENCE_RETRIES:
                log.warning(f"Audience {self.audience} still differs from {base_url} - keeping current token")
                return False
            self.audience_retries += 1
            log.info(f"Token audience {self.audience} does not match region {base_url} - re-authorizing")
            self.clear()
            self.audience = base_url
            self.login()
            return True

    def clear(self):
        with self._lock:
            self.token = None
            self.state = SessionState.UNAUTHENTICATED
            if self.on_token:
                self.on_token(None, self.audience)

    def _set_token(self, token: SessionToken):
        self.token = token
        self.state = SessionState.READY
        log.debug(f"  Access Token: {_short(token.access_token)}")
        log.debug(f"  Refresh Token: {_short(token.refresh_token)}")
        if self.on_token:
            self.on_token(token, self.audience)

    def _token_request(self, data: dict, error, timeout: float) -> SessionToken:
        headers = {'Content-Type': 'application/x-www-form-urlencoded'}
        log.debug(f"POST: {TOKEN_URL} grant_type={data['grant_type']}")
        try:
            response = requests.post(TOKEN_URL, data=data, headers=headers, timeout=timeout)
        except requests.exceptions.RequestException as exc:
            raise error(f"Token request failed: {exc}") from exc
        log.debug(f"  Response Code: {response.status_code}")
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code > 201 or not body.get("access_token"):
            message = body.get("error_description") or body.get("error") or f"HTTP {response.status_code}"
            log.error(f"Token request failed. Response code: {response.status_code}")
            raise error(f"Token request failed: {message}")
        return SessionToken.from_response(body, self.clock(), previous=self.token)
