from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from windfleet.cache import make_key
from windfleet.fleet import FleetContext
from windfleet.schemas import dashboard_response
from windfleet.signals import ACTUAL_POWER, FORECAST_POWER, MergedSeries, merge_devices, merge_site
from windfleet.summary import (
    DayNightSplit,
    RealtimeTotal,
    TurbineSnapshot,
    energy_by_turbine,
    forecast_day_night,
    lowest_performing,
    realtime_total,
    snapshot_turbines,
)
from windfleet.telemetry import TelemetryClient
from windfleet.timeline import (
    TEN_MINUTES,
    ResolutionChoice,
    align_day_window,
    build_timeline,
    current_ten_minute_slot,
    includes_instant,
    is_exact_today,
    next_ten_minute_boundary,
    select_resolution,
)

log = logging.getLogger(__name__)

@dataclass
class DashboardQuery:
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    location: str = ""
    devices: List[str] = field(default_factory=list)

@dataclass
class DashboardSummary:
    turbines: List[TurbineSnapshot]
    forecast: DayNightSplit
    chart: MergedSeries
    chart_per_turbine: Dict[int, MergedSeries]
    realtime: RealtimeTotal
    total_mwh: float
    lowest: Optional[TurbineSnapshot]
    choice: ResolutionChoice
    window_start: datetime
    window_end: datetime

def _listed_ids(ctx: FleetContext, location: str) -> List[int]:
    if location and location in ctx.registry.location_groups:
        return ctx.registry.ids_in(location)
    return ctx.registry.ids

def _selected_ids(listed: Sequence[int], devices: Sequence[str]) -> List[int]:
    if not devices:
        return list(listed)
    wanted = {d.strip() for d in devices}
    return [i for i in listed if str(i) in wanted]

def cache_key(window_start: datetime, window_end: datetime, location: str, devices: Sequence[str]) -> str:
    return make_key("dashboard:v1", {
        "start": window_start.isoformat(),
        "end": window_end.isoformat(),
        "location": location,
        "devices": list(devices),
    })

async def build_dashboard(
    ctx: FleetContext,
    client: TelemetryClient,
    q: DashboardQuery,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Assemble the JSON dashboard for one window.

    Windows that do not contain `now` are historical: their result is cached
    under (window, location, devices) and served from the cache afterwards.
    """
    now = now or datetime.now(timezone.utc)
    window_start, window_end = align_day_window(q.start, q.end, now=now)
    historical = not includes_instant(window_start, window_end, now)
    key = cache_key(window_start, window_end, q.location, q.devices)

    if historical:
        cached = ctx.cache.get_json(key)
        if cached is not None:
            log.debug("dashboard cache hit %s", key)
            return cached

    summary = await compute_dashboard(ctx, client, q, window_start, window_end, now)
    out = dashboard_response(summary).model_dump(by_alias=True, mode="json")
    if historical:
        ctx.cache.set_json(key, out)
    return out

async def compute_dashboard(
    ctx: FleetContext,
    client: TelemetryClient,
    q: DashboardQuery,
    window_start: datetime,
    window_end: datetime,
    now: datetime,
) -> DashboardSummary:
    choice = select_resolution(window_start, window_end)
    listed = _listed_ids(ctx, q.location)
    selected = _selected_ids(listed, q.devices)

    if not selected:
        return DashboardSummary(
            turbines=[], forecast=DayNightSplit(), chart=MergedSeries([], []), chart_per_turbine={},
            realtime=RealtimeTotal(), total_mwh=0.0, lowest=None, choice=choice,
            window_start=window_start, window_end=window_end,
        )

    # The next-10-minute forecast slot hangs off the site snapshot's timestamp
    site_now = await client.realtime_or_empty(selected, [ACTUAL_POWER], aggregate="site")
    snapshot = realtime_total(site_now)
    slot_start = next_ten_minute_boundary(snapshot.timestamp) if snapshot.timestamp else current_ten_minute_slot(now)
    slot_end = slot_start + TEN_MINUTES

    chart_kw = dict(resolution=choice.resolution, use_utc=choice.sub_hour_capable, tz=ctx.tz)
    live, next_forecast, day_forecast, site_chart, device_chart, raw_power = await asyncio.gather(
        client.realtime_or_empty(selected, [ACTUAL_POWER], aggregate="device"),
        client.data_or_empty(selected, [FORECAST_POWER], slot_start, slot_end, aggregate="device"),
        client.data_or_empty(selected, [FORECAST_POWER], window_start, window_end, resolution="hourly", aggregate="device"),
        client.data_or_empty(selected, [ACTUAL_POWER, FORECAST_POWER], window_start, window_end, aggregate="site", **chart_kw),
        client.data_or_empty(selected, [ACTUAL_POWER, FORECAST_POWER], window_start, window_end, aggregate="device", **chart_kw),
        client.data_or_empty(selected, [ACTUAL_POWER], window_start, window_end, resolution="0", aggregate="device"),
    )

    site_timeline = build_timeline(choice, window_start, window_end, ctx.tz, present=site_chart.timestamps())
    device_timeline = build_timeline(choice, window_start, window_end, ctx.tz, present=device_chart.timestamps())

    turbines = snapshot_turbines(ctx.registry, listed, selected, live, next_forecast)
    energy = energy_by_turbine(raw_power)
    lowest = lowest_performing(
        turbines,
        (window_start, window_end),
        exact_today=is_exact_today(window_start, window_end, ctx.tz, now),
        energy=energy,
    )

    return DashboardSummary(
        turbines=turbines,
        forecast=forecast_day_night(day_forecast),
        chart=merge_site(site_chart, site_timeline),
        chart_per_turbine=merge_devices(device_chart, device_timeline),
        realtime=snapshot,
        total_mwh=sum(energy.values()),
        lowest=lowest,
        choice=choice,
        window_start=window_start,
        window_end=window_end,
    )

class Superseded(Exception):
    """A newer request from the same consumer replaced this one."""

class LatestRequestGate:
    """Runs at most one request per consumer; a newer call cancels the older one."""

    def __init__(self):
        self._inflight: Dict[str, asyncio.Task] = {}

    async def run(self, consumer: Optional[str], make: Callable[[], Awaitable[Any]]) -> Any:
        if not consumer:
            return await make()
        previous = self._inflight.get(consumer)
        if previous is not None and not previous.done():
            previous.cancel()
        task = asyncio.ensure_future(make())
        self._inflight[consumer] = task
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and self._inflight.get(consumer) is not task:
                raise Superseded(consumer)
            raise
        finally:
            if self._inflight.get(consumer) is task:
                del self._inflight[consumer]
