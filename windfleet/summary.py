from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from windfleet.fleet import FleetRegistry
from windfleet.signals import ACTUAL_POWER, FORECAST_POWER, SignalTable
from windfleet.timeline import to_utc

INTERVAL_MINUTES = float(os.environ.get("WINDFLEET_INTERVAL_MINUTES", "10"))
DAY_HOURS_UTC = (10, 22)  # 06:00-18:00 in the fleet's local time

def kwh_to_mwh(kwh: float) -> float:
    return kwh / 1000.0

def mwh_to_kwh(mwh: float) -> float:
    return mwh * 1000.0

@dataclass
class DayNightSplit:
    day_mwh: float = 0.0
    night_mwh: float = 0.0

def forecast_day_night(forecast: SignalTable) -> DayNightSplit:
    """Split hourly forecast energy into day and night totals (MWh)."""
    day_kwh = night_kwh = 0.0
    lo, hi = DAY_HOURS_UTC
    for series in forecast.by_aggregate(FORECAST_POWER).values():
        for ts, val in series.items():
            kwh = val or 0.0
            if lo <= to_utc(ts).hour < hi:
                day_kwh += kwh
            else:
                night_kwh += kwh
    return DayNightSplit(kwh_to_mwh(day_kwh), kwh_to_mwh(night_kwh))

def energy_by_turbine(raw: SignalTable, interval_minutes: float = INTERVAL_MINUTES) -> Dict[int, float]:
    """Energy (MWh) per turbine from raw power readings at a fixed interval."""
    hours = interval_minutes / 60.0
    return {
        agg: kwh_to_mwh(sum((v or 0.0) * hours for v in series.values()))
        for agg, series in raw.by_aggregate(ACTUAL_POWER).items()
    }

def total_energy(raw: SignalTable, interval_minutes: float = INTERVAL_MINUTES) -> float:
    return sum(energy_by_turbine(raw, interval_minutes).values())

@dataclass
class RealtimeTotal:
    timestamp: Optional[datetime] = None
    value: float = 0.0

def realtime_total(snapshot: SignalTable) -> RealtimeTotal:
    """Sum of each aggregate's latest reading; timestamp is the newest of them."""
    out = RealtimeTotal()
    for agg in snapshot.by_aggregate(ACTUAL_POWER):
        first = snapshot.first_reading(ACTUAL_POWER, agg)
        if first is None:
            continue
        ts, val = first
        out.value += val or 0.0
        if out.timestamp is None or ts > out.timestamp:
            out.timestamp = ts
    return out

@dataclass
class TurbineSnapshot:
    aggregate_id: int
    name: str
    measurement: Optional[float]
    timestamp: Optional[datetime]
    online: bool
    excluded: bool
    latitude: float
    longitude: float
    location: str
    forecast_next_10_min: Optional[float]
    forecast_timestamp: Optional[datetime]
    performance_ratio: Optional[float] = None
    total_mwh: Optional[float] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None

def snapshot_turbines(
    registry: FleetRegistry,
    listed_ids: Sequence[int],
    selected_ids: Sequence[int],
    live: SignalTable,
    next_forecast: SignalTable,
) -> List[TurbineSnapshot]:
    """Current state of every listed turbine; unselected ones are marked excluded."""
    selected = set(selected_ids)
    out = []
    for tid in listed_ids:
        is_selected = tid in selected
        reading = live.first_reading(ACTUAL_POWER, tid) if is_selected else None
        forecast = next_forecast.first_reading(FORECAST_POWER, tid) if is_selected else None
        online = reading is not None
        lat, lon = registry.coordinates.get(tid, (0.0, 0.0))
        out.append(TurbineSnapshot(
            aggregate_id=tid,
            name=registry.name_for(tid),
            measurement=reading[1] if online else 0.0,
            timestamp=reading[0] if reading else None,
            online=online,
            excluded=not is_selected,
            latitude=lat,
            longitude=lon,
            location=registry.location_for(tid),
            forecast_next_10_min=(forecast[1] or 0.0) if forecast else None,
            forecast_timestamp=forecast[0] if forecast else None,
        ))
    return out

def performance_ratio(t: TurbineSnapshot) -> float:
    forecast = t.forecast_next_10_min or 0.0
    if forecast <= 0:
        return 0.0
    return (t.measurement or 0.0) / forecast

def lowest_performing(
    turbines: Sequence[TurbineSnapshot],
    window: Tuple[datetime, datetime],
    exact_today: bool,
    energy: Optional[Dict[int, float]] = None,
) -> Optional[TurbineSnapshot]:
    """Worst turbine of the window.

    For today: lowest live/forecast ratio among online turbines. Otherwise:
    lowest energy over the window among all listed turbines. Ties keep the
    first one in list order.
    """
    start, end = window
    if exact_today:
        scored = [replace(t, performance_ratio=performance_ratio(t)) for t in turbines if t.online]
        key = lambda t: t.performance_ratio
    else:
        energy = energy or {}
        scored = [replace(t, total_mwh=energy.get(t.aggregate_id, 0.0)) for t in turbines]
        key = lambda t: t.total_mwh
    if not scored:
        return None
    worst = min(scored, key=key)
    return replace(worst, start=start, end=end)
