from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import List, Optional

from windfleet.fleet import FleetContext
from windfleet.schemas import ForecastPoint, RealtimePoint, TurbineDetails
from windfleet.signals import ACTUAL_POWER, FORECAST_POWER, SignalTable
from windfleet.telemetry import TelemetryClient
from windfleet.timeline import iso, local_date, local_day_bounds, to_utc

log = logging.getLogger(__name__)

DAYLIGHT_LOCAL_HOURS = (6, 18)

def day_or_night(ts: datetime, ctx: FleetContext) -> str:
    lo, hi = DAYLIGHT_LOCAL_HOURS
    return "Day" if lo <= to_utc(ts).astimezone(ctx.tz).hour < hi else "Night"

def _flatten(table: SignalTable, signal_id: int) -> List[tuple]:
    return [(ts, val) for series in table.by_aggregate(signal_id).values() for ts, val in series.items()]

async def turbine_details(
    ctx: FleetContext,
    client: TelemetryClient,
    turbine_id: int,
    day: Optional[date] = None,
    now: Optional[datetime] = None,
) -> TurbineDetails:
    """One turbine's 10-minute forecast and actual power for a fleet day."""
    now = now or datetime.now(timezone.utc)
    today = local_date(now, ctx.tz)
    day = day or today
    is_today = day == today
    start, end = local_day_bounds(day)

    log.debug("details for turbine %s over %s .. %s", turbine_id, start, end)
    forecast, actual = await asyncio.gather(
        client.data_or_empty([turbine_id], [FORECAST_POWER], start, end, resolution="10minute", aggregate="site"),
        client.data_or_empty([turbine_id], [ACTUAL_POWER], start, end, resolution="10minute", aggregate="site"),
    )
    realtime = _flatten(actual, ACTUAL_POWER)
    if is_today:
        latest = await client.realtime_or_empty([turbine_id], [ACTUAL_POWER], aggregate="device")
        realtime += _flatten(latest, ACTUAL_POWER)
        realtime = [(ts, val) for ts, val in realtime if ts <= now]

    lat, lon = ctx.registry.coordinates.get(turbine_id, (0.0, 0.0))
    return TurbineDetails(
        device_id=turbine_id,
        name=ctx.registry.name_for(turbine_id),
        forecast=[
            ForecastPoint(timestamp=iso(ts), measurement=val, day_night=day_or_night(ts, ctx))
            for ts, val in _flatten(forecast, FORECAST_POWER)
        ],
        realtime=[RealtimePoint(timestamp=iso(ts), measurement=val) for ts, val in realtime],
        latitude=lat,
        longitude=lon,
        is_today_local=is_today,
        start_utc=iso(start),
        end_utc=iso(end),
    )
