from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import pytz

from windfleet.timeline import parse_instant

log = logging.getLogger(__name__)

ACTUAL_POWER = 5
FORECAST_POWER = 838

Series = Dict[datetime, Optional[float]]

def _num(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None

@dataclass
class SignalTable:
    """Upstream response decoded once: signal id → aggregate id → series.

    Series are sorted by timestamp; values are floats or None for gaps.
    """
    signals: Dict[int, Dict[int, Series]] = field(default_factory=dict)

    @classmethod
    def decode(cls, raw: Any, tz: Optional[pytz.BaseTzInfo] = None) -> "SignalTable":
        """Offset-less timestamps are read as wall-clock time in `tz` (UTC if None)."""
        table = cls()
        if not isinstance(raw, list):
            return table
        for item in raw:
            if not isinstance(item, dict):
                continue
            data = item.get("data")
            sig = (item.get("dataSignal") or {}).get("dataSignalId")
            try:
                agg_id = int(item.get("aggregateId"))
                sig_id = int(sig)
            except (TypeError, ValueError):
                log.debug("skipping upstream entry without ids: %r", item.get("aggregateId"))
                continue
            if not isinstance(data, dict):
                continue
            points: List[Tuple[datetime, Optional[float]]] = []
            for ts, val in data.items():
                try:
                    points.append((parse_instant(ts, tz), _num(val)))
                except (TypeError, ValueError, OverflowError):
                    continue
            series = table.signals.setdefault(sig_id, {}).setdefault(agg_id, {})
            for ts, val in sorted(points, key=lambda p: p[0]):
                series[ts] = val
        return table

    def series(self, signal_id: int, aggregate_id: int) -> Series:
        return self.signals.get(signal_id, {}).get(aggregate_id, {})

    def by_aggregate(self, signal_id: int) -> Dict[int, Series]:
        return self.signals.get(signal_id, {})

    def timestamps(self) -> List[datetime]:
        """Every timestamp present in any series (duplicates kept)."""
        return [ts for per_agg in self.signals.values() for s in per_agg.values() for ts in s]

    def first_reading(self, signal_id: int, aggregate_id: int) -> Optional[Tuple[datetime, Optional[float]]]:
        s = self.series(signal_id, aggregate_id)
        for ts, val in s.items():
            return ts, val
        return None

    def __bool__(self) -> bool:
        return any(self.signals.values())

@dataclass
class AggregatedPoint:
    live_value: Optional[float] = None
    forecast_value: float = 0.0

@dataclass
class MergedSeries:
    timeline: List[datetime]
    points: List[AggregatedPoint]
    last_live_index: int = -1

    @property
    def live(self) -> List[Optional[float]]:
        return [p.live_value for p in self.points]

    @property
    def forecast(self) -> List[float]:
        return [p.forecast_value for p in self.points]

def _merge(series_by_signal: Dict[int, List[Series]], timeline: List[datetime]) -> MergedSeries:
    position = {ts: i for i, ts in enumerate(timeline)}
    merged = MergedSeries(timeline=list(timeline), points=[AggregatedPoint() for _ in timeline])

    for series in series_by_signal.get(ACTUAL_POWER, []):
        for ts, val in series.items():
            i = position.get(ts)
            if i is None or val is None:
                continue
            p = merged.points[i]
            p.live_value = (p.live_value or 0.0) + val
            merged.last_live_index = max(merged.last_live_index, i)

    for series in series_by_signal.get(FORECAST_POWER, []):
        for ts, val in series.items():
            i = position.get(ts)
            if i is None or val is None:
                continue
            merged.points[i].forecast_value += val

    return merged

def merge_site(table: SignalTable, timeline: List[datetime]) -> MergedSeries:
    """Sum every aggregate of both signals onto the timeline.

    Buckets after the last one with a live contribution are reset to None: no
    live telemetry has arrived for them yet, which is not the same as zero.
    """
    merged = _merge(
        {sig: list(table.by_aggregate(sig).values()) for sig in (ACTUAL_POWER, FORECAST_POWER)},
        timeline,
    )
    for p in merged.points[merged.last_live_index + 1:]:
        p.live_value = None
    return merged

def merge_devices(table: SignalTable, timeline: List[datetime]) -> Dict[int, MergedSeries]:
    device_ids = sorted({agg for sig in (ACTUAL_POWER, FORECAST_POWER) for agg in table.by_aggregate(sig)})
    out: Dict[int, MergedSeries] = {}
    for device_id in device_ids:
        out[device_id] = _merge(
            {sig: [table.series(sig, device_id)] for sig in (ACTUAL_POWER, FORECAST_POWER)},
            timeline,
        )
    return out
