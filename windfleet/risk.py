"""
Turbine risk analysis
=====================
Flags turbines whose output is falling behind forecast, from the trailing
24 h of hourly actual and forecast power.

  1. deviation = actual - forecast; only the shortfall (min(0, deviation)) is scored
  2. trend     : least-squares slope of the shortfall against its index
  3. volatility: population standard deviation of the shortfall
  4. outlook   : shortfall extrapolated 3 hours ahead along the slope
  5. stoppage  : last 3 actual readings all at or below 1 kW

Turbines without enough data, or currently at/above forecast, produce no
assessment at all.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Literal, Optional, Sequence

import numpy as np

from windfleet.fleet import FleetContext
from windfleet.signals import ACTUAL_POWER, FORECAST_POWER, SignalTable
from windfleet.telemetry import TelemetryClient, UpstreamError

log = logging.getLogger(__name__)

Severity = Literal["low", "medium", "high", "stopped"]
SEVERITY_RANK = {"low": 0, "medium": 1, "high": 2}

# ─── Thresholds ───────────────────────────────────────────────────────────────
LAST_DEVIATION_THRESHOLD = -200.0
SLOPE_THRESHOLD          = -5.0
VOLATILITY_THRESHOLD     = 200.0
MIN_POINTS               = 5
FORECAST_HOURS           = 3
STOPPED_THRESHOLD        = 1.0
STOPPED_CHECK_POINTS     = 3
LOOKBACK_HOURS           = 24
FETCH_RETRIES            = 3
FETCH_DELAY_SECONDS      = 1.0

@dataclass
class RiskPoint:
    timestamp: datetime
    actual: float
    forecast: float

@dataclass
class RiskAssessment:
    deviation_series: List[float]
    negative_deviation_series: List[float]
    last_deviation: float
    slope: float
    volatility: float
    forecast_deviations: List[float]
    severity: Severity
    stopped: bool
    reasoning: str

@dataclass
class TurbineRisk:
    turbine_id: int
    name: str
    assessment: RiskAssessment

def risk_points(table: SignalTable, aggregate_id: int) -> List[RiskPoint]:
    """Pair actual and forecast on the forecast's timestamps.

    Points without an actual reading are dropped; a missing forecast counts as 0.
    Both signals must be present or there is no data.
    """
    forecast = table.series(FORECAST_POWER, aggregate_id)
    actual = table.series(ACTUAL_POWER, aggregate_id)
    if not forecast or not actual:
        return []
    out = []
    for ts, f in forecast.items():
        a = actual.get(ts)
        if a is None:
            continue
        out.append(RiskPoint(ts, a, f or 0.0))
    return out

def ols_slope(values: Sequence[float]) -> float:
    y = np.asarray(values, dtype=float)
    x = np.arange(len(y), dtype=float)
    dx = x - x.mean()
    den = float(np.sum(dx ** 2))
    if den == 0:
        return 0.0
    return float(np.sum(dx * (y - y.mean())) / den)

def extrapolate(values: Sequence[float], slope: float, hours: int = FORECAST_HOURS) -> List[float]:
    last = float(values[-1])
    return [last + slope * k for k in range(1, hours + 1)]

def is_stopped(actuals: Sequence[float]) -> bool:
    tail = actuals[-STOPPED_CHECK_POINTS:]
    return len(tail) > 0 and all(a <= STOPPED_THRESHOLD for a in tail)

def classify(last_deviation: float, slope: float, predicted: Sequence[float], stopped: bool) -> Severity:
    if stopped:
        return "stopped"
    if (last_deviation < LAST_DEVIATION_THRESHOLD * 2
            or slope < SLOPE_THRESHOLD * 2
            or any(d < LAST_DEVIATION_THRESHOLD * 1.5 for d in predicted)):
        return "high"
    if last_deviation < LAST_DEVIATION_THRESHOLD * 1.5:
        return "medium"
    return "low"

def analyze_risk(points: Sequence[RiskPoint]) -> Optional[RiskAssessment]:
    if len(points) < MIN_POINTS:
        log.debug("only %d points, skipping", len(points))
        return None

    deviations = [p.actual - p.forecast for p in points]
    negative = [min(0.0, d) for d in deviations]
    last_deviation = negative[-1]
    if last_deviation >= 0:
        return None

    slope = ols_slope(negative)
    volatility = float(np.std(negative))
    predicted = extrapolate(negative, slope)
    stopped = is_stopped([p.actual for p in points])

    future_risk = any(d < LAST_DEVIATION_THRESHOLD for d in predicted)
    sustained_drop = (
        last_deviation < LAST_DEVIATION_THRESHOLD
        and slope < SLOPE_THRESHOLD
        and all(d < 0 for d in negative[-3:])
    )
    erratic = volatility > VOLATILITY_THRESHOLD and slope < 0
    if not (future_risk or sustained_drop or erratic or stopped):
        return None

    severity = classify(last_deviation, slope, predicted, stopped)
    if stopped:
        reasoning = "Turbine has stopped generating."
    else:
        reasoning = (
            f"Detected underperformance: last deviation {last_deviation:.1f}, "
            f"slope {slope:.2f}, volatility {volatility:.1f}, "
            f"forecasted deviations {', '.join(f'{d:.1f}' for d in predicted)}. "
            f"Severity: {severity}."
        )

    return RiskAssessment(
        deviation_series=deviations,
        negative_deviation_series=negative,
        last_deviation=last_deviation,
        slope=slope,
        volatility=volatility,
        forecast_deviations=predicted,
        severity=severity,
        stopped=stopped,
        reasoning=reasoning,
    )

async def _assess_turbine(
    ctx: FleetContext,
    client: TelemetryClient,
    turbine_id: int,
    start: datetime,
    end: datetime,
) -> Optional[TurbineRisk]:
    try:
        table = await client.data(
            [turbine_id], [FORECAST_POWER, ACTUAL_POWER], start, end,
            resolution="hourly", aggregate="site",
            retries=FETCH_RETRIES, delay=FETCH_DELAY_SECONDS,
        )
    except UpstreamError as e:
        log.error("risk fetch failed for turbine %s: %s", turbine_id, e)
        return None

    points = risk_points(table, turbine_id)
    if not points:
        return None
    assessment = analyze_risk(points)
    if assessment is None:
        return None
    return TurbineRisk(turbine_id, ctx.registry.name_for(turbine_id), assessment)

async def turbines_at_risk(
    ctx: FleetContext,
    client: TelemetryClient,
    now: Optional[datetime] = None,
) -> List[TurbineRisk]:
    """Assess every turbine concurrently over the trailing window, fleet order kept."""
    end = now or datetime.now(timezone.utc)
    start = end - timedelta(hours=LOOKBACK_HOURS)
    log.info("risk analysis over %s .. %s for %d turbines", start, end, len(ctx.registry.ids))

    results = await asyncio.gather(
        *(_assess_turbine(ctx, client, tid, start, end) for tid in ctx.registry.ids),
        return_exceptions=True,
    )
    out = []
    for tid, res in zip(ctx.registry.ids, results):
        if isinstance(res, BaseException):
            log.error("risk analysis failed for turbine %s", tid, exc_info=res)
            continue
        if res is not None:
            out.append(res)
    return out
