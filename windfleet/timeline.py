from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Literal, Optional, Tuple

import pandas as pd
import pytz
from dateutil import parser as dtparse

Resolution = Literal["hourly", "daily", "weekly", "monthly", "yearly"]

# Upper bound (inclusive) of the window length for each resolution, finest first
RESOLUTION_STEPS: List[Tuple[timedelta, Resolution]] = [
    (timedelta(days=7), "hourly"),
    (timedelta(days=30), "daily"),
    (timedelta(days=180), "weekly"),
    (timedelta(days=730), "monthly"),
]
RESOLUTION_ORDER: List[Resolution] = ["hourly", "daily", "weekly", "monthly", "yearly"]
GENERATED_RESOLUTIONS = ("hourly", "daily")

TEN_MINUTES = timedelta(minutes=10)
DAY_START_HOUR_UTC = 4

@dataclass(frozen=True)
class ResolutionChoice:
    resolution: Resolution
    sub_hour_capable: bool

    @property
    def generated(self) -> bool:
        """True when the timeline is built locally rather than taken from the data."""
        return self.resolution in GENERATED_RESOLUTIONS

def select_resolution(window_start: datetime, window_end: datetime) -> ResolutionChoice:
    span = window_end - window_start
    for limit, res in RESOLUTION_STEPS:
        if span <= limit:
            return ResolutionChoice(res, res == "hourly")
    return ResolutionChoice("yearly", False)

def to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

def parse_instant(value: str, tz: Optional[pytz.BaseTzInfo] = None) -> datetime:
    """ISO-8601 string → aware UTC datetime.

    Strings without an offset are wall-clock time in `tz`, or UTC when no tz is given.
    """
    dt = dtparse.isoparse(value)
    if dt.tzinfo is None and tz is not None:
        dt = tz.localize(dt)
    return to_utc(dt)

def iso(dt: Optional[datetime]) -> Optional[str]:
    """JavaScript-style ISO string: UTC, millisecond precision, trailing Z."""
    if dt is None:
        return None
    dt = to_utc(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"

def build_timeline(
    choice: ResolutionChoice,
    window_start: datetime,
    window_end: datetime,
    tz: pytz.BaseTzInfo = pytz.UTC,
    present: Iterable[datetime] = (),
) -> List[datetime]:
    """Bucket-start instants (UTC) for a window.

    Hourly/daily buckets step from window_start until past window_end. Hourly
    steps are absolute hours; daily steps advance the local calendar date and
    keep the local wall-clock time, so DST changes never duplicate or skip a
    bucket. Coarser timelines are the distinct instants in `present`.
    """
    start = to_utc(window_start)
    end = to_utc(window_end)

    if not choice.generated:
        seen = [to_utc(p) for p in present]
        if not seen:
            return []
        idx = pd.DatetimeIndex(pd.to_datetime(seen, utc=True))
        idx = idx.unique().sort_values()
        return [ts.to_pydatetime() for ts in idx]

    out: List[datetime] = []
    if choice.resolution == "hourly":
        t = start
        while t <= end:
            out.append(t)
            t = t + timedelta(hours=1)
        return out

    local_start = start.astimezone(tz).replace(tzinfo=None)
    k = 0
    while True:
        naive = local_start + timedelta(days=k)
        t = tz.normalize(tz.localize(naive)).astimezone(timezone.utc)
        if t > end:
            break
        if not out or t > out[-1]:
            out.append(t)
        k += 1
    return out

# ---------- Day windows ----------
def align_day_window(
    start: Optional[datetime],
    end: Optional[datetime],
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """Snap request bounds onto the fleet's 04:00 UTC day boundary.

    The start moves to 04:00:00.000 UTC and the end to 03:59:59.999 UTC of their
    own UTC dates; an end that lands before the start becomes one day after it
    minus a millisecond.
    """
    now = to_utc(now or datetime.now(timezone.utc))
    s = to_utc(start) if start else now
    e = to_utc(end) if end else now
    if s > e:
        s, e = e, s

    day_start = s.replace(hour=DAY_START_HOUR_UTC, minute=0, second=0, microsecond=0)
    day_end = e.replace(hour=DAY_START_HOUR_UTC - 1, minute=59, second=59, microsecond=999000)
    if day_end < day_start:
        day_end = day_start + timedelta(days=1) - timedelta(milliseconds=1)
    return day_start, day_end

def local_date(dt: datetime, tz: pytz.BaseTzInfo) -> date:
    return to_utc(dt).astimezone(tz).date()

def local_day_bounds(day: date) -> Tuple[datetime, datetime]:
    """04:00:00 UTC of `day` to 03:59:59 UTC of the following day."""
    start = datetime(day.year, day.month, day.day, DAY_START_HOUR_UTC, tzinfo=timezone.utc)
    return start, start + timedelta(days=1) - timedelta(seconds=1)

def is_exact_today(window_start: datetime, window_end: datetime, tz: pytz.BaseTzInfo, now: datetime) -> bool:
    today = local_date(now, tz)
    return local_date(window_start, tz) == today and local_date(window_end, tz) == today

def includes_instant(window_start: datetime, window_end: datetime, now: datetime) -> bool:
    return window_start <= to_utc(now) <= window_end

# ---------- 10-minute slots ----------
def next_ten_minute_boundary(dt: datetime) -> datetime:
    dt = to_utc(dt)
    epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
    slots = math.ceil((dt - epoch) / TEN_MINUTES)
    return epoch + slots * TEN_MINUTES

def current_ten_minute_slot(dt: datetime) -> datetime:
    dt = to_utc(dt)
    epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
    return epoch + ((dt - epoch) // TEN_MINUTES) * TEN_MINUTES
