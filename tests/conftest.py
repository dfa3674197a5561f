"""Shared fixtures: a fleet context and a fake upstream telemetry API."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

import httpx
import pytest

from windfleet.cache import ResultCache
from windfleet.fleet import TURBINES, FleetContext, FleetRegistry
from windfleet.telemetry import TelemetryClient

UPSTREAM = "http://upstream.test/api"

def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)

def entry(aggregate_id: int, signal_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    return {"aggregateId": aggregate_id, "dataSignal": {"dataSignalId": signal_id}, "data": data}

class FakeUpstream:
    """Routes /data and /realtimedata calls to per-test responders.

    A responder receives the query params (as a dict) and returns the JSON body,
    or an int to answer with that HTTP status instead.
    """

    def __init__(self):
        self.data: Callable[[Dict[str, str]], Any] = lambda p: []
        self.realtime: Callable[[Dict[str, str]], Any] = lambda p: []
        self.calls: List[tuple] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        params = dict(request.url.params)
        path = request.url.path.rsplit("/", 1)[-1]
        self.calls.append((path, params))
        responder = self.realtime if path == "realtimedata" else self.data
        body = responder(params)
        if isinstance(body, int):
            return httpx.Response(body, text="boom")
        return httpx.Response(200, json=body)

    def client(self, retries: int = 2) -> TelemetryClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return TelemetryClient(base_url=UPSTREAM, api_key="test-key", http=http, retries=retries, delay=0)

    def count(self, path: str) -> int:
        return sum(1 for p, _ in self.calls if p == path)

@pytest.fixture
def registry() -> FleetRegistry:
    return FleetRegistry(tuple(TURBINES))

@pytest.fixture
def ctx(registry) -> FleetContext:
    return FleetContext(registry=registry, cache=ResultCache())

@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()
