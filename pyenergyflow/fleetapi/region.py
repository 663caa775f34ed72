"""
Regional base URL discovery for the Fleet API.

Every candidate region is probed at once with GET /api/1/users/region; the
first one answering 200 with a fleet_api_base_url wins. The probes run in
the executor and are raced on the event loop, so nothing blocks while a
region that does not know the account times out.
"""
import asyncio
import logging
from concurrent.futures import Executor
from typing import Iterable, Optional

import requests

log = logging.getLogger(__name__)

REGION_API = "api/1/users/region"
REGION_TIMEOUT = 2.0  # Seconds per candidate

fleet_api_urls = {
    "North America, Asia-Pacific": "https://fleet-api.prd.na.vn.cloud.tesla.com",
    "Europe, Middle East, Africa": "https://fleet-api.prd.eu.vn.cloud.tesla.com",
    "China": "https://fleet-api.prd.cn.vn.cloud.tesla.cn"
}


def probe_region(base_url: str, access_token: str, timeout: float = REGION_TIMEOUT) -> Optional[str]:
    """
    {
        'response': {
            'region': 'eu',
            'fleet_api_base_url': 'https://fleet-api.prd.eu.vn.cloud.tesla.com'
        }
    }
    """
    url = f"{base_url}/{REGION_API}"
    headers = {"Authorization": "Bearer " + access_token}
    try:
        r = requests.get(url, headers=headers, timeout=timeout)
    except requests.exceptions.RequestException as exc:
        log.debug(f"Region probe {url} failed: {exc}")
        return None
    if r.status_code != 200:
        log.debug(f"Region probe {url} returned {r.status_code}")
        return None
    try:
        body = r.json()
    except ValueError:
        log.debug(f"Region probe {url} returned non-json body")
        return None
    resolved = (body.get("response") or {}).get("fleet_api_base_url") if isinstance(body, dict) else None
    if not isinstance(resolved, str) or not resolved.startswith("https://"):
        return None
    return resolved.rstrip("/")


async def resolve_region(access_token: str, candidates: Iterable[str] = None, timeout: float = REGION_TIMEOUT,
                         executor: Executor = None) -> Optional[str]:
    """Return the authoritative base URL, or None if no candidate answered in time"""
    loop = asyncio.get_running_loop()
    candidates = list(candidates or fleet_api_urls.values())
    tasks = [
        asyncio.ensure_future(asyncio.wait_for(
            loop.run_in_executor(executor, probe_region, base, access_token, timeout),
            timeout=timeout))
        for base in candidates
    ]
    try:
        for next_done in asyncio.as_completed(tasks):
            try:
                resolved = await next_done
            except asyncio.TimeoutError:
                continue
            if resolved:
                log.debug(f"Resolved Fleet API region: {resolved}")
                return resolved
        log.debug("No region candidate answered - keeping configured base URL")
        return None
    finally:
        for task in tasks:
            task.cancel()
