# pyEnergyFlow - Historical Series
# -*- coding: utf-8 -*-
"""
 Day windows, day navigation and decoding for the calendar_history API.

 Functions:
    history_window(end, now)          - (start, end) of the day shown for end
    shift_day(end, days, now)         - move end by whole days, never past now
    date_label(end, today)            - "Today", "Yesterday" or a medium date
    decode_energy_series(payload)     - battery power flow points from kind=energy
    decode_soe_series(payload)        - state of charge points from kind=soe
    solar_energy_total(payload)       - solar energy (Wh) in a kind=energy payload
    interpolate_zero_crossing(a, b)   - point where the line a->b crosses zero
    classify_source(solar, grid)      - solar or grid with a hysteresis margin

 Energy points are positive when the battery discharges to the home and
 negative when it charges; charging points carry the source that fed it.
"""
import logging
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from dateutil import parser as dateparser
from pydantic import BaseModel, ConfigDict

from pyenergyflow.display import FLOW_HYSTERESIS_W
from pyenergyflow.exceptions import DecodeError

log = logging.getLogger(__name__)

DAY = timedelta(hours=24)


class PowerFrom(str, Enum):
    SOLAR = "solar"
    GRID = "grid"
    BATTERY = "battery"


class PowerTo(str, Enum):
    HOME = "home"
    BATTERY = "battery"
    GRID = "grid"


class HistoryPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    value: float
    source: Optional[PowerFrom] = None
    destination: Optional[PowerTo] = None


def _align(end: datetime, now: datetime) -> datetime:
    if end.tzinfo is None:
        return end.replace(tzinfo=now.tzinfo)
    if now.tzinfo is not None:
        return end.astimezone(now.tzinfo)
    return end


def history_window(end: datetime, now: datetime) -> Tuple[datetime, datetime]:
    end = min(_align(end, now), now)
    if end.date() == now.date():
        return end - DAY, end
    # Past days end at 23:59:59 so the whole calendar day is shown
    day_end = end.replace(hour=23, minute=59, second=59, microsecond=0)
    return day_end - DAY, day_end


def shift_day(end: datetime, days: int, now: datetime) -> datetime:
    return min(_align(end, now) + days * DAY, now)


def date_label(end: datetime, today: date) -> str:
    day = end.date()
    if day == today:
        return "Today"
    if day == today - timedelta(days=1):
        return "Yesterday"
    return f"{day:%b} {day.day}, {day.year}"


def format_timestamp(value: datetime) -> str:
    """RFC3339 with offset, as calendar_history expects"""
    return value.isoformat(timespec="seconds")


def classify_source(solar: float, grid: float, margin: float = FLOW_HYSTERESIS_W) -> PowerFrom:
    if grid > solar + margin:
        return PowerFrom.GRID
    return PowerFrom.SOLAR


def crosses_zero(start: HistoryPoint, end: HistoryPoint) -> bool:
    return (start.value >= 0) != (end.value >= 0)


def interpolate_zero_crossing(start: HistoryPoint, end: HistoryPoint) -> HistoryPoint:
    if start.value == end.value:
        fraction = 0.0
    else:
        fraction = start.value / (start.value - end.value)
    crossing = start.timestamp + (end.timestamp - start.timestamp) * fraction
    return HistoryPoint(timestamp=crossing, value=0.0, source=start.source, destination=start.destination)


def _time_series(payload: Optional[Dict[str, Any]], kind: str) -> List[Dict[str, Any]]:
    if payload is None:
        return []
    series = payload.get("time_series") if isinstance(payload, dict) else None
    if not isinstance(series, list):
        raise DecodeError(f"Unexpected {kind} history payload: missing time_series")
    return series


def _timestamp(entry: Dict[str, Any], kind: str) -> datetime:
    try:
        return dateparser.isoparse(entry["timestamp"])
    except (KeyError, TypeError, ValueError) as exc:
        raise DecodeError(f"Unexpected {kind} history entry '{entry}': {exc}") from exc


def decode_energy_series(payload: Optional[Dict[str, Any]]) -> List[HistoryPoint]:
    """
    Battery power flow from a kind=energy response

    {
        'period': 'day',
        'time_series': [
            {
                'timestamp': '2024-05-12T00:00:00-07:00',
                'solar_energy_exported': 0,
                'battery_energy_exported': 230,
                'battery_energy_imported_from_grid': 0,
                'battery_energy_imported_from_solar': 0,
                'battery_energy_imported_from_generator': 0,
                ...
            },
            ...
        ]
    }
    """
    points = []
    for entry in _time_series(payload, "energy"):
        exported = entry.get("battery_energy_exported") or 0.0
        from_solar = entry.get("battery_energy_imported_from_solar") or 0.0
        from_grid = entry.get("battery_energy_imported_from_grid") or 0.0
        from_generator = entry.get("battery_energy_imported_from_generator") or 0.0
        value = exported - (from_solar + from_grid + from_generator)
        if value < 0:
            source, destination = classify_source(from_solar, from_grid), PowerTo.BATTERY
        else:
            source, destination = PowerFrom.BATTERY, PowerTo.HOME
        points.append(HistoryPoint(timestamp=_timestamp(entry, "energy"), value=value,
                                   source=source, destination=destination))
    points.sort(key=lambda p: p.timestamp)
    return points


def decode_soe_series(payload: Optional[Dict[str, Any]]) -> List[HistoryPoint]:
    """State of charge from a kind=soe response: {'time_series': [{'timestamp': ..., 'soe': 55.0}]}"""
    points = []
    for entry in _time_series(payload, "soe"):
        soe = entry.get("soe")
        if soe is None:
            continue
        points.append(HistoryPoint(timestamp=_timestamp(entry, "soe"), value=soe))
    points.sort(key=lambda p: p.timestamp)
    return points


def solar_energy_total(payload: Optional[Dict[str, Any]]) -> float:
    return sum(entry.get("solar_energy_exported") or 0.0 for entry in _time_series(payload, "energy"))
