# pyEnergyFlow Module
# -*- coding: utf-8 -*-
"""
 Python module to read live energy flow from a home battery / solar system

 Features
    * Local mode: cookie login to the energy gateway on the LAN
    * Cloud mode: Fleet API with OAuth2 authorization code and refresh tokens
    * Finds the regional Fleet API base URL for the account
    * Optional wall connector vitals merged into the live snapshot
    * Daily history (battery power flow and state of charge) with day navigation
    * Optional grid carbon intensity from Electricity Maps
    * Two polling cadences with stale-response protection

 Classes
    EnergySourceClient(settings, store, authorizer, executor, clock)

 Parameters
    settings                  # Settings (see pyenergyflow.config for PE_* variables)
    store = None              # SettingsStore used to persist tokens, region and site index
    authorizer = None         # Callable(authorize_url) -> redirect URL (cloud sign in)
    executor = None           # ThreadPoolExecutor for blocking HTTP calls
    clock = None              # Callable returning the current aware datetime

 Coroutines
    login()                   # Authenticate and fetch the first snapshot
    refresh()                 # Fetch the live snapshot
    refresh_daily()           # Fetch today's solar energy and carbon intensity
    fetch_history(end)        # Fetch both history series for a day
    previous_day() / next_day()
    refresh_sites()           # Reload energy sites (cloud)
    select_site(index)        # Switch active site (cloud)
    run() / stop()            # Poll until stopped
    logout()                  # Drop sessions and tokens

 Requirements
    This module requires the following modules: requests, urllib3, python-dateutil,
    pydantic, pydantic-settings (python-dotenv for the command line)
"""
import logging
import sys

version_tuple = (0, 1, 0)
version = __version__ = '%d.%d.%d' % version_tuple
__author__ = 'pyenergyflow'

from pyenergyflow.client import EnergySourceClient
from pyenergyflow.config import JsonFileStore, MemoryStore, Settings, SettingsStore
from pyenergyflow.exceptions import (AuthenticationError, AuthorizationError, DecodeError,
                                     InvalidConfigurationParameter, LoginError, PyEnergyFlowError,
                                     TokenRefreshError, TransportError)
from pyenergyflow.models import (ChargingState, EnergySite, EnergySnapshot, GridState, LoginMode,
                                 SecondaryDevice, SiteInfo)

log = logging.getLogger(__name__)
log.debug('%s version %s', __name__, __version__)
log.debug('Python %s on %s', sys.version, sys.platform)


def set_debug(toggle=True, color=True):
    """Enable verbose logging"""
    if toggle:
        if color:
            logging.basicConfig(format='\x1b[31;1m%(levelname)s:%(message)s\x1b[0m', level=logging.DEBUG)
        else:
            logging.basicConfig(format='%(levelname)s:%(message)s', level=logging.DEBUG)
        log.setLevel(logging.DEBUG)
        log.debug("%s [%s]\n" % (__name__, __version__))
    else:
        log.setLevel(logging.NOTSET)


__all__ = [
    "EnergySourceClient", "Settings", "SettingsStore", "JsonFileStore", "MemoryStore",
    "PyEnergyFlowError", "TransportError", "DecodeError", "InvalidConfigurationParameter",
    "AuthenticationError", "LoginError", "AuthorizationError", "TokenRefreshError",
    "EnergySnapshot", "SecondaryDevice", "EnergySite", "SiteInfo", "ChargingState", "GridState",
    "LoginMode", "set_debug", "version", "__version__",
]
