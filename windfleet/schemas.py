from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from windfleet.timeline import iso

if TYPE_CHECKING:
    from windfleet.dashboard import DashboardSummary
    from windfleet.risk import TurbineRisk
    from windfleet.summary import TurbineSnapshot

class ApiModel(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

# ---------- Dashboard ----------
class TurbineSnapshotOut(ApiModel):
    aggregate_id: int
    name: str
    measurement: Optional[float]
    timestamp: Optional[str]
    online: bool
    excluded: bool
    latitude: float
    longitude: float
    location: str
    forecast_next_10_min: Optional[float]
    forecast_timestamp: Optional[str]

class LowestTurbineOut(TurbineSnapshotOut):
    performance_ratio: Optional[float] = None
    total_mwh: Optional[float] = Field(default=None, alias="totalMWh")
    start: str
    end: str

class LineChart(ApiModel):
    labels: List[str] = []
    live: List[Optional[float]] = []
    forecast: List[float] = []

class TurbineSeries(ApiModel):
    live: List[Optional[float]]
    forecast: List[float]

class LineChartPerTurbine(ApiModel):
    labels: List[str] = []
    turbines: Dict[str, TurbineSeries] = {}

class RealtimeOut(ApiModel):
    timestamp: Optional[str] = None
    value: float = 0.0

class DashboardResponse(ApiModel):
    mapped_data: List[TurbineSnapshotOut]
    forecast_day_mwh: float = Field(alias="forecastDayMWh")
    forecast_night_mwh: float = Field(alias="forecastNightMWh")
    line_chart: LineChart
    line_chart_per_turbine: LineChartPerTurbine
    realtime: RealtimeOut
    total_mwh: float = Field(alias="totalMWh")
    lowest_turbine: Optional[LowestTurbineOut]
    resolution: str
    timestamp_start: str
    timestamp_end: str

def _snapshot_fields(t: "TurbineSnapshot") -> dict:
    return dict(
        aggregate_id=t.aggregate_id,
        name=t.name,
        measurement=t.measurement,
        timestamp=iso(t.timestamp),
        online=t.online,
        excluded=t.excluded,
        latitude=t.latitude,
        longitude=t.longitude,
        location=t.location,
        forecast_next_10_min=t.forecast_next_10_min,
        forecast_timestamp=iso(t.forecast_timestamp),
    )

def dashboard_response(s: "DashboardSummary") -> DashboardResponse:
    lowest = None
    if s.lowest is not None:
        lowest = LowestTurbineOut(
            **_snapshot_fields(s.lowest),
            performance_ratio=s.lowest.performance_ratio,
            total_mwh=s.lowest.total_mwh,
            start=iso(s.lowest.start),
            end=iso(s.lowest.end),
        )

    device_labels: List[str] = []
    per_turbine: Dict[str, TurbineSeries] = {}
    for device_id, merged in s.chart_per_turbine.items():
        device_labels = [iso(ts) for ts in merged.timeline]
        per_turbine[str(device_id)] = TurbineSeries(live=merged.live, forecast=merged.forecast)

    return DashboardResponse(
        mapped_data=[TurbineSnapshotOut(**_snapshot_fields(t)) for t in s.turbines],
        forecast_day_mwh=s.forecast.day_mwh,
        forecast_night_mwh=s.forecast.night_mwh,
        line_chart=LineChart(
            labels=[iso(ts) for ts in s.chart.timeline],
            live=s.chart.live,
            forecast=s.chart.forecast,
        ),
        line_chart_per_turbine=LineChartPerTurbine(labels=device_labels, turbines=per_turbine),
        realtime=RealtimeOut(timestamp=iso(s.realtime.timestamp), value=s.realtime.value),
        total_mwh=s.total_mwh,
        lowest_turbine=lowest,
        resolution=s.choice.resolution,
        timestamp_start=iso(s.window_start),
        timestamp_end=iso(s.window_end),
    )

# ---------- Risk ----------
class TurbineRiskOut(ApiModel):
    turbine_id: int
    name: str
    last_deviation: float
    slope: float
    volatility: float
    severity: Literal["low", "medium", "high", "stopped"]
    reasoning: str
    deviation_trend: List[float]
    forecast_trend: List[float]
    stopped: bool

    @classmethod
    def from_risk(cls, r: "TurbineRisk") -> "TurbineRiskOut":
        a = r.assessment
        return cls(
            turbine_id=r.turbine_id,
            name=r.name,
            last_deviation=a.last_deviation,
            slope=a.slope,
            volatility=a.volatility,
            severity=a.severity,
            reasoning=a.reasoning,
            deviation_trend=a.deviation_series,
            forecast_trend=a.forecast_deviations,
            stopped=a.stopped,
        )

class RiskResponse(ApiModel):
    turbines_at_risk: List[TurbineRiskOut]

# ---------- Turbine details ----------
class ForecastPoint(ApiModel):
    timestamp: str
    measurement: Optional[float]
    unit: str = "kW"
    day_night: Literal["Day", "Night"]

class RealtimePoint(ApiModel):
    timestamp: str
    measurement: Optional[float]
    unit: str = "kW"

class TurbineDetails(ApiModel):
    device_id: int
    name: str
    forecast: List[ForecastPoint]
    realtime: List[RealtimePoint]
    latitude: float
    longitude: float
    is_today_local: bool
    start_utc: str = Field(alias="startUTC")
    end_utc: str = Field(alias="endUTC")
