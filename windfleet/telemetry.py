from __future__ import annotations

import os
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

import httpx
import pytz

from windfleet.signals import SignalTable
from windfleet.timeline import iso

BASE_URL = os.environ.get("WINDFLEET_BASE_URL", "http://localhost:8080/api/v1").rstrip("/")
API_KEY = os.environ.get("WINDFLEET_API_KEY", "")
HTTP_TIMEOUT_SECONDS = float(os.environ.get("WINDFLEET_HTTP_TIMEOUT_SECONDS", "20"))

log = logging.getLogger(__name__)

class UpstreamError(Exception):
    """The telemetry API could not be reached or answered with an error."""

def _ids(ids: Iterable[int]) -> str:
    return ",".join(str(i) for i in ids)

class TelemetryClient:
    """Thin async client for the upstream device-telemetry API.

    `fetch` retries a bounded number of times with a fixed delay and then
    raises; the `*_or_empty` helpers degrade a failed source to an empty table.
    """

    def __init__(
        self,
        base_url: str = BASE_URL,
        api_key: str = API_KEY,
        http: httpx.AsyncClient | None = None,
        retries: int = 2,
        delay: float = 0.5,
    ):
        self.base_url = base_url.rstrip("/")
        self.retries = retries
        self.delay = delay
        headers = {"Accept": "application/json", "X-Api-Key": api_key}
        self._http = http or httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS, headers=headers)
        if http is not None:
            self._http.headers.update(headers)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def fetch(self, path: str, params: Dict[str, Any], retries: Optional[int] = None, delay: Optional[float] = None) -> Any:
        retries = self.retries if retries is None else retries
        delay = self.delay if delay is None else delay
        url = f"{self.base_url}/{path.lstrip('/')}"
        for attempt in range(retries + 1):
            try:
                r = await self._http.get(url, params=params)
                if r.status_code != 200:
                    raise UpstreamError(f"HTTP {r.status_code} from {path}: {r.text[:200]}")
                return r.json()
            except (httpx.HTTPError, ValueError, UpstreamError) as e:
                if attempt == retries:
                    raise UpstreamError(str(e)) from e
                log.warning("upstream %s failed (attempt %d/%d), retrying in %.1fs: %s",
                            path, attempt + 1, retries + 1, delay, e)
                await asyncio.sleep(delay)

    async def data(
        self,
        device_ids: Iterable[int],
        signal_ids: Iterable[int],
        start: datetime,
        end: datetime,
        resolution: Optional[str] = None,
        aggregate: str = "device",
        use_utc: bool = True,
        tz: Optional[pytz.BaseTzInfo] = None,
        **kw: Any,
    ) -> SignalTable:
        params: Dict[str, Any] = {
            "deviceIds": _ids(device_ids),
            "dataSignalIds": _ids(signal_ids),
            "timestampStart": iso(start),
            "timestampEnd": iso(end),
            "useUtc": "true" if use_utc else "false",
            "aggregate": aggregate,
            "aggregateLevel": 0,
            "calculation": "sum",
        }
        if resolution is not None:
            params["resolution"] = resolution
        # Local-time answers carry no offset; read them in the caller's zone
        raw = await self.fetch("data", params, **kw)
        return SignalTable.decode(raw, tz=None if use_utc else tz)

    async def realtime(self, device_ids: Iterable[int], signal_ids: Iterable[int], aggregate: str = "device", **kw: Any) -> SignalTable:
        return SignalTable.decode(await self.realtime_raw(device_ids, signal_ids, aggregate, **kw))

    async def realtime_raw(self, device_ids: Iterable[int], signal_ids: Iterable[int], aggregate: str = "device", **kw: Any) -> Any:
        params = {
            "deviceIds": _ids(device_ids),
            "dataSignalIds": _ids(signal_ids),
            "aggregate": aggregate,
            "aggregateLevel": 0,
            "calculation": "sum",
        }
        return await self.fetch("realtimedata", params, **kw)

    async def data_or_empty(self, *args: Any, **kw: Any) -> SignalTable:
        try:
            return await self.data(*args, **kw)
        except UpstreamError as e:
            log.warning("data source degraded to empty: %s", e)
            return SignalTable()

    async def realtime_or_empty(self, *args: Any, **kw: Any) -> SignalTable:
        try:
            return await self.realtime(*args, **kw)
        except UpstreamError as e:
            log.warning("realtime source degraded to empty: %s", e)
            return SignalTable()
