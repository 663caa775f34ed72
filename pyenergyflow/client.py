# pyEnergyFlow - Energy Source Client
# -*- coding: utf-8 -*-
"""
 EnergySourceClient owns every network interaction and exposes the results
 as plain attributes that a presentation layer reads or subscribes to.

 Observable values:
    data                        - current EnergySnapshot or None
    error_message               - last user-visible error or None
    secondary_error             - last wall connector error or None
    battery_power_history       - battery power flow points for current_end_date
    battery_percentage_history  - state of charge points for current_end_date
    sites, site_index           - energy sites (cloud) and the selected index
    site_info                   - static metadata of the selected site
    solar_energy_today_wh       - solar energy generated today
    grid_intensity              - grid carbon intensity (optional enrichment)
    current_end_date            - end of the history window shown
    is_loading, is_ready, state - progress flags

 Operations (coroutines):
    login()             - authenticate and fetch the first snapshot
    refresh()           - fast tick: live snapshot and wall connector
    refresh_daily()     - slow tick: today's solar energy and carbon intensity
    fetch_history(end)  - both history series for the day ending at end
    previous_day()      - shift the history window back one day
    next_day()          - shift the history window forward, never past now
    refresh_sites()     - reload the energy site list (cloud)
    select_site(index)  - switch the active energy site (cloud)
    set_login_mode(mode)- switch between local and cloud
    run() / stop()      - start and stop both polling loops
    logout()            - drop sessions and tokens

 Blocking requests calls run in a dedicated thread pool. The event loop is
 the only writer of the observable values, and every operation catches its
 own errors: nothing raised by the network layer escapes to the caller.
"""
import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, List, Optional, Set

from dateutil import tz

from pyenergyflow.carbon import CarbonIntensity
from pyenergyflow.config import Settings, SettingsStore
from pyenergyflow.exceptions import InvalidConfigurationParameter, PyEnergyFlowError
from pyenergyflow.fleetapi.auth import FleetAuth, SessionState, SessionToken
from pyenergyflow.fleetapi.fleetapi import FleetAPI
from pyenergyflow.fleetapi.region import resolve_region
from pyenergyflow.history import (HistoryPoint, date_label, decode_energy_series, decode_soe_series,
                                  history_window, shift_day, solar_energy_total)
from pyenergyflow.local.gateway import LocalGateway
from pyenergyflow.local.wallconnector import WallConnector
from pyenergyflow.merge import carry_forward, merge_secondary
from pyenergyflow.models import (EnergySite, EnergySnapshot, GridIntensity, LoginMode, SecondaryDevice,
                                 SiteInfo, decode)
from pyenergyflow.sequencing import RequestSequencer, SingleFlight

log = logging.getLogger(__name__)

CALL_GRACE = 5      # Seconds on top of the HTTP timeout before an executor call is abandoned
POOL_SIZE = 8

FAST = "fast"
SLOW = "slow"


class EnergySourceClient:
    def __init__(self, settings: Settings, store: SettingsStore = None,
                 authorizer: Callable[[str], str] = None, executor: ThreadPoolExecutor = None,
                 clock: Callable[[], datetime] = None):
        self.settings = settings
        self.store = store
        self.authorizer = authorizer
        self.tz = tz.gettz(settings.timezone) or tz.tzlocal()
        self.clock = clock or (lambda: datetime.now(self.tz))
        self._own_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=POOL_SIZE, thread_name_prefix="pyenergyflow")

        # Observable state
        self.data: Optional[EnergySnapshot] = None
        self.error_message: Optional[str] = None
        self.secondary_error: Optional[str] = None
        self.battery_power_history: List[HistoryPoint] = []
        self.battery_percentage_history: List[HistoryPoint] = []
        self.sites: List[EnergySite] = []
        self.site_index: int = settings.site_index
        self.site_info: Optional[SiteInfo] = None
        self.solar_energy_today_wh: Optional[float] = None
        self.grid_intensity: Optional[GridIntensity] = None
        self.current_end_date: datetime = self.clock()
        self.is_loading = False
        self.is_ready = False

        # Collaborators, built on first use
        self.gateway: Optional[LocalGateway] = None
        self.wall_connector: Optional[WallConnector] = None
        self.auth: Optional[FleetAuth] = None
        self.fleet: Optional[FleetAPI] = None
        self.carbon: Optional[CarbonIntensity] = None
        if settings.carbon_token and settings.carbon_zone:
            self.carbon = CarbonIntensity(settings.carbon_token, settings.carbon_zone, settings.timeout)

        self.sequencer = RequestSequencer()
        self.single_flight = SingleFlight()
        self._held_devices: Optional[List[SecondaryDevice]] = None
        self._region_checked = settings.base_url_resolved
        self._listeners: List[Callable[["EnergySourceClient"], Any]] = []
        self._poll_tasks: List[asyncio.Task] = []
        self._ticks: Set[asyncio.Task] = set()

    # Observers

    def add_listener(self, callback: Callable[["EnergySourceClient"], Any]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as exc:
                log.error(f"Listener {callback} failed: {exc}")

    @property
    def login_mode(self) -> LoginMode:
        return self.settings.login_mode

    @property
    def state(self) -> SessionState:
        if self.login_mode == LoginMode.CLOUD:
            return self.auth.state if self.auth else SessionState.UNAUTHENTICATED
        if self.gateway and self.gateway.logged_in:
            return SessionState.READY
        return SessionState.UNAUTHENTICATED

    @property
    def selected_site(self) -> Optional[EnergySite]:
        if 0 <= self.site_index < len(self.sites):
            return self.sites[self.site_index]
        return None

    @property
    def date_label(self) -> str:
        return date_label(self.current_end_date, self.clock().date())

    # Plumbing

    async def _call(self, func: Callable, *args, timeout: Optional[float] = -1):
        """Run a blocking call in the executor; timeout=None waits as long as it takes"""
        if timeout == -1:
            timeout = self.settings.timeout + CALL_GRACE
        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(loop.run_in_executor(self._executor, functools.partial(func, *args)),
                                      timeout=timeout)

    @staticmethod
    def _describe(exc: BaseException, what: str) -> str:
        if isinstance(exc, asyncio.TimeoutError):
            return f"Timeout waiting for {what}"
        return str(exc) or f"{what} failed ({exc.__class__.__name__})"

    def _record_error(self, exc: BaseException, what: str) -> None:
        self.error_message = self._describe(exc, what)
        if isinstance(exc, PyEnergyFlowError) or isinstance(exc, asyncio.TimeoutError):
            log.error(f"{what}: {self.error_message}")
        else:
            log.exception(f"Unexpected error during {what}")

    def _persist(self) -> None:
        if self.store is None:
            return
        try:
            self.store.save(self.settings.persisted())
        except Exception as exc:
            log.error(f"Unable to persist settings: {exc}")

    def _save_token(self, token: Optional[SessionToken], audience: str) -> None:
        self.settings.access_token = token.access_token if token else None
        self.settings.refresh_token = token.refresh_token if token else None
        self.settings.token_expires_at = token.expires_at if token else None
        self._persist()

    def _local_gateway(self) -> LocalGateway:
        if self.gateway is None:
            s = self.settings
            self.gateway = LocalGateway(s.host, s.password, email=s.email, timeout=s.timeout)
            if s.wall_connector_host:
                self.wall_connector = WallConnector(s.wall_connector_host, timeout=s.timeout)
        return self.gateway

    def _fleet_auth(self) -> FleetAuth:
        if self.auth is None:
            s = self.settings
            token = None
            if s.access_token:
                token = SessionToken(access_token=s.access_token, refresh_token=s.refresh_token,
                                     expires_at=s.token_expires_at)
            self.auth = FleetAuth(s.client_id, s.client_secret, s.redirect_uri, s.base_url,
                                  authorizer=self.authorizer, token=token, on_token=self._save_token)
            self.fleet = FleetAPI(s.base_url, self.auth.access_token, timeout=s.timeout)
        return self.auth

    # Login

    async def login(self) -> bool:
        """Authenticate with the active source, then fetch the first snapshot"""
        seq = self.sequencer.next("auth")
        self.is_loading = True
        self._notify()
        try:
            if self.login_mode == LoginMode.LOCAL:
                gateway = self._local_gateway()
                await self._call(gateway.login)
            else:
                await self._ensure_cloud_session()
        except Exception as exc:
            if self.sequencer.accept("auth", seq):
                self.is_ready = False
                self._record_error(exc, "login")
            self.is_loading = False
            self._notify()
            return False
        if not self.sequencer.accept("auth", seq):
            return False
        log.debug(f"Logged in ({self.login_mode.value})")
        self.is_ready = True
        self.error_message = None
        await self.refresh()
        self.is_loading = False
        self._notify()
        return True

    async def _ensure_cloud_session(self) -> None:
        """token -> region -> sites -> site info, each step only when still missing"""
        if not self.settings.client_id:
            raise InvalidConfigurationParameter("Fleet API client id is not configured")
        auth = self._fleet_auth()
        await self._call(auth.access_token, timeout=None)
        if not self._region_checked:
            await self._resolve_base_url()
        if not self.sites:
            await self._load_sites()
        if self.site_info is None and self.selected_site is not None:
            await self._load_site_info()

    async def _resolve_base_url(self) -> None:
        auth = self.auth
        resolved = await resolve_region(auth.token.access_token, timeout=self.settings.region_timeout,
                                        executor=self._executor)
        # Probe once per session, answered or not
        self._region_checked = True
        if resolved is None:
            log.info(f"Region not resolved - using {self.settings.base_url}")
            return
        if resolved != self.settings.base_url:
            log.info(f"Using regional Fleet API {resolved}")
            self.settings.base_url = resolved
            self.fleet.base_url = resolved
        self.settings.base_url_resolved = True
        self._persist()
        await self._call(auth.realign_audience, resolved, timeout=None)

    async def _load_sites(self) -> None:
        seq = self.sequencer.next("sites")
        sites = await self._call(self.fleet.getsites)
        if not self.sequencer.accept("sites", seq):
            return
        previous = self.selected_site
        self.sites = sites
        if not 0 <= self.site_index < len(sites):
            log.debug(f"Site index {self.site_index} out of range for {len(sites)} site(s) - using 0")
            self.site_index = 0
        if self.settings.site_index != self.site_index:
            self.settings.site_index = self.site_index
            self._persist()
        if previous is not None and (self.selected_site is None or self.selected_site.id != previous.id):
            log.debug(f"Selected site changed from {previous.id} - dropping its data")
            self._invalidate_site()
        if not sites:
            raise InvalidConfigurationParameter("No energy sites found for this account")

    async def _load_site_info(self) -> None:
        site = self.selected_site
        payload = await self._call(self.fleet.get_site_info, site.id)
        if site != self.selected_site:
            return
        self.site_info = decode(SiteInfo, payload, "site info")
        log.debug(f"Site info: {self.site_info}")

    # Fast tick

    async def refresh(self) -> None:
        """Fetch the live snapshot (and wall connector). Skipped if the previous one is still running."""
        with self.single_flight.run(FAST) as started:
            if not started:
                return
            try:
                if self.login_mode == LoginMode.LOCAL:
                    await self._refresh_local()
                else:
                    await self._refresh_cloud()
            except Exception as exc:
                self._record_error(exc, "refresh")
            self._notify()

    async def _refresh_local(self) -> None:
        gateway = self._local_gateway()
        if not gateway.logged_in:
            await self._call(gateway.login)
            self.is_ready = True
        if self.wall_connector is not None:
            await asyncio.gather(self._refresh_gateway(gateway), self._refresh_wall_connector())
        else:
            await self._refresh_gateway(gateway)

    async def _refresh_gateway(self, gateway: LocalGateway) -> None:
        seq = self.sequencer.next("snapshot")
        aggregates, percentage, status = await asyncio.gather(
            self._call(gateway.aggregates),
            self._call(gateway.battery_percentage),
            self._call(gateway.grid_status),
            return_exceptions=True)
        if not self.sequencer.accept("snapshot", seq):
            return
        errors = []
        snapshot = self.data
        if isinstance(aggregates, BaseException):
            errors.append(self._describe(aggregates, "meter aggregates"))
        else:
            snapshot = carry_forward(aggregates.model_copy(update={"timestamp": self.clock()}), snapshot)
        update = {}
        if isinstance(percentage, BaseException):
            errors.append(self._describe(percentage, "battery percentage"))
        else:
            update["battery_percentage"] = percentage
        if isinstance(status, BaseException):
            errors.append(self._describe(status, "grid status"))
        else:
            update["grid_status"] = status
        if snapshot is not None:
            if update:
                snapshot = snapshot.model_copy(update=update)
            self._apply_primary(snapshot)
        if errors:
            self.error_message = "; ".join(errors)
            log.error(f"Gateway refresh: {self.error_message}")
        else:
            self.error_message = None

    async def _refresh_wall_connector(self) -> None:
        try:
            device = await self._call(self.wall_connector.device)
        except Exception as exc:
            # Never touches the primary snapshot
            self.secondary_error = self._describe(exc, "wall connector")
            log.error(f"Wall connector: {self.secondary_error}")
            return
        self.secondary_error = None
        if self.data is None:
            self._held_devices = [device]
            return
        self.data = merge_secondary(self.data, [device])

    def _apply_primary(self, snapshot: EnergySnapshot) -> None:
        if self._held_devices is not None:
            snapshot = merge_secondary(snapshot, self._held_devices)
            self._held_devices = None
        elif self.wall_connector is not None and self.data is not None:
            # Aggregates never report the wall connector, keep its last reading
            snapshot = merge_secondary(snapshot, self.data.secondary_devices)
        self.data = snapshot

    async def _refresh_cloud(self) -> None:
        await self._ensure_cloud_session()
        site = self.selected_site
        seq = self.sequencer.next("snapshot")
        payload = await self._call(self.fleet.get_live_status, site.id)
        battery_count = self.site_info.battery_count if self.site_info else None
        snapshot = EnergySnapshot.from_live_status(payload, battery_count=battery_count, timestamp=self.clock())
        if not self.sequencer.accept("snapshot", seq):
            return
        self.is_ready = True
        self.data = snapshot
        self.error_message = None

    # Slow tick

    async def refresh_daily(self) -> None:
        """Today's solar energy (cloud) and grid carbon intensity"""
        with self.single_flight.run(SLOW) as started:
            if not started:
                return
            if self.login_mode == LoginMode.CLOUD:
                await self._refresh_solar_today()
            if self.carbon is not None:
                await self._refresh_carbon()
            self._notify()

    async def _refresh_solar_today(self) -> None:
        try:
            await self._ensure_cloud_session()
            site = self.selected_site
            now = self.clock()
            start = now.replace(hour=0, minute=0, second=0, microsecond=0)
            payload = await self._call(self.fleet.get_calendar_history, site.id, "energy", start, now,
                                       self.settings.timezone)
            self.solar_energy_today_wh = solar_energy_total(payload)
        except Exception as exc:
            self._record_error(exc, "daily solar energy")

    async def _refresh_carbon(self) -> None:
        try:
            self.grid_intensity = await self._call(self.carbon.get)
        except Exception as exc:
            # Keep the previous reading
            log.error(f"Carbon intensity: {self._describe(exc, 'carbon intensity')}")

    # History

    async def fetch_history(self, end: datetime = None) -> None:
        """Replace both history series with the day ending at end (default current_end_date)"""
        if self.login_mode != LoginMode.CLOUD:
            log.debug("History is only available from the Fleet API")
            return
        now = self.clock()
        start, end = history_window(end or self.current_end_date, now)
        self.current_end_date = end
        seq = self.sequencer.next("history")
        self.is_loading = True
        self._notify()
        try:
            await self._ensure_cloud_session()
            site = self.selected_site
            energy, soe = await asyncio.gather(
                self._call(self.fleet.get_calendar_history, site.id, "energy", start, end, self.settings.timezone),
                self._call(self.fleet.get_calendar_history, site.id, "soe", start, end, self.settings.timezone),
                return_exceptions=True)
        except Exception as exc:
            if self.sequencer.accept("history", seq):
                self._record_error(exc, "history")
                self.is_loading = False
                self._notify()
            return
        if not self.sequencer.accept("history", seq):
            return
        errors = []
        try:
            if isinstance(energy, BaseException):
                raise energy
            self.battery_power_history = decode_energy_series(energy)
        except Exception as exc:
            errors.append(self._describe(exc, "energy history"))
        try:
            if isinstance(soe, BaseException):
                raise soe
            self.battery_percentage_history = decode_soe_series(soe)
        except Exception as exc:
            errors.append(self._describe(exc, "state of charge history"))
        if errors:
            self.error_message = "; ".join(errors)
            log.error(f"History: {self.error_message}")
        self.is_loading = False
        self._notify()

    async def previous_day(self) -> None:
        await self._navigate(-1)

    async def next_day(self) -> None:
        await self._navigate(1)

    async def _navigate(self, days: int) -> None:
        if self.login_mode == LoginMode.CLOUD:
            await self._refresh_solar_today()
        await self.fetch_history(shift_day(self.current_end_date, days, self.clock()))

    # Sites

    async def refresh_sites(self) -> List[EnergySite]:
        if self.login_mode != LoginMode.CLOUD:
            return []
        try:
            auth = self._fleet_auth()
            await self._call(auth.access_token, timeout=None)
            await self._load_sites()
        except Exception as exc:
            self._record_error(exc, "site list")
        self._notify()
        return self.sites

    async def select_site(self, index: int) -> None:
        if self.login_mode != LoginMode.CLOUD:
            return
        if not 0 <= index < len(self.sites):
            log.debug(f"Site index {index} out of range - using 0")
            index = 0
        if index == self.site_index and self.site_info is not None:
            return
        self.site_index = index
        self.settings.site_index = index
        self._persist()
        self._invalidate_site()
        self._notify()
        # A running tick belongs to the previous site, so do not wait for the next one
        try:
            await self._refresh_cloud()
        except Exception as exc:
            self._record_error(exc, "refresh")
        await self._refresh_solar_today()
        await self.fetch_history(self.clock())

    def _invalidate_site(self) -> None:
        # Anything in flight belongs to the previous site
        self.sequencer.reset("snapshot")
        self.sequencer.reset("history")
        self.data = None
        self.site_info = None
        self.battery_power_history = []
        self.battery_percentage_history = []
        self.solar_energy_today_wh = None

    # Mode and lifecycle

    async def set_login_mode(self, mode: LoginMode) -> None:
        if mode == self.login_mode:
            return
        await self.logout()
        self.settings.login_mode = LoginMode(mode)
        self._persist()
        self._notify()

    async def logout(self) -> None:
        """Close the gateway session, clear tokens and every observable value"""
        if self.gateway is not None:
            try:
                await self._call(self.gateway.close_session)
            except Exception as exc:
                log.debug(f"Gateway logout failed: {exc}")
            self.gateway.session.close()
        self.reset()

    def reset(self) -> None:
        self.sequencer.reset()
        if self.auth is not None:
            self.auth.clear()
        self.gateway = None
        self.wall_connector = None
        self.auth = None
        self.fleet = None
        self.settings.access_token = None
        self.settings.refresh_token = None
        self.settings.token_expires_at = None
        self.settings.base_url_resolved = False
        self._region_checked = False
        self._held_devices = None
        self.data = None
        self.error_message = None
        self.secondary_error = None
        self.battery_power_history = []
        self.battery_percentage_history = []
        self.sites = []
        self.site_info = None
        self.solar_energy_today_wh = None
        self.is_loading = False
        self.is_ready = False
        self._persist()
        self._notify()

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def _poll(self, tick: Callable, interval: float) -> None:
        # Ticks are started on schedule, not awaited, so a slow tick is skipped by SingleFlight
        while True:
            self._spawn(tick())
            await asyncio.sleep(interval)

    async def run(self) -> None:
        """Log in, then poll on both cadences until stop() is called"""
        await self.login()
        if self.login_mode == LoginMode.CLOUD:
            await self.fetch_history(self.clock())
        self._poll_tasks = [
            asyncio.ensure_future(self._poll(self.refresh, self.settings.fast_poll)),
            asyncio.ensure_future(self._poll(self.refresh_daily, self.settings.slow_poll)),
        ]
        try:
            await asyncio.gather(*self._poll_tasks)
        except asyncio.CancelledError:
            log.debug("Polling stopped")

    async def stop(self) -> None:
        for task in self._poll_tasks + list(self._ticks):
            task.cancel()
        await asyncio.gather(*self._poll_tasks, *self._ticks, return_exceptions=True)
        self._poll_tasks = []
        if self.gateway is not None:
            self.gateway.session.close()
        if self._own_executor:
            self._executor.shutdown(wait=False)
