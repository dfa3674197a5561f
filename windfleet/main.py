from __future__ import annotations

import os
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from windfleet import __version__
from windfleet.dashboard import DashboardQuery, LatestRequestGate, Superseded, build_dashboard
from windfleet.details import turbine_details
from windfleet.fleet import FleetContext, default_context
from windfleet.risk import turbines_at_risk
from windfleet.schemas import RiskResponse, TurbineDetails, TurbineRiskOut
from windfleet.signals import ACTUAL_POWER
from windfleet.telemetry import TelemetryClient, UpstreamError
from windfleet.timeline import parse_instant

APP_NAME = "WindFleet API"
DEFAULT_LAT, DEFAULT_LON = 12.12, -68.9

logging.basicConfig(
    level=os.environ.get("WINDFLEET_LOG_LEVEL", "INFO"),
    format="[windfleet] %(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)

def create_app(ctx: FleetContext | None = None, client: TelemetryClient | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.ctx = ctx or default_context()
        app.state.client = client or TelemetryClient()
        app.state.gate = LatestRequestGate()
        log.info("%s ready (cache backend: %s)", APP_NAME, app.state.ctx.cache.backend)
        yield
        if client is None:
            await app.state.client.aclose()

    app = FastAPI(title=APP_NAME, version=__version__, lifespan=lifespan)

    cors = os.environ.get("WINDFLEET_CORS_ORIGINS")
    origins = [o.strip() for o in cors.split(",")] if cors else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        log.exception("unhandled error on %s", request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    # ---------- Endpoints ----------
    @app.get("/health")
    def health():
        return {"ok": True, "name": APP_NAME, "version": app.version}

    @app.get("/api/greenbyte/turbines")
    async def fleet_realtime(request: Request) -> List[Dict[str, Any]]:
        ctx: FleetContext = request.app.state.ctx
        try:
            raw = await request.app.state.client.realtime_raw(ctx.registry.ids, [ACTUAL_POWER])
        except UpstreamError as e:
            log.error("fleet realtime fetch failed: %s", e)
            raise HTTPException(status_code=502, detail="Failed to fetch data")
        out = []
        for item in raw if isinstance(raw, list) else []:
            try:
                lat, lon = ctx.registry.coordinates.get(int(item.get("aggregateId")), (DEFAULT_LAT, DEFAULT_LON))
            except (TypeError, ValueError):
                lat, lon = DEFAULT_LAT, DEFAULT_LON
            out.append({**item, "latitude": lat, "longitude": lon})
        return out

    @app.get("/api/greenbyte/turbines/devices")
    def devices(request: Request) -> Dict[str, str]:
        return {str(k): v for k, v in request.app.state.ctx.registry.names.items()}

    @app.get("/api/location-groups")
    def location_groups(request: Request) -> Dict[str, List[int]]:
        return request.app.state.ctx.registry.groups_as_lists()

    @app.get("/api/greenbyte/turbines/all")
    async def dashboard(
        request: Request,
        start: Optional[str] = None,
        end: Optional[str] = None,
        location: str = "",
        devices: Optional[str] = None,
        x_consumer_id: str | None = Header(default=None, alias="X-Consumer-Id"),
    ):
        try:
            q = DashboardQuery(
                start=parse_instant(start) if start else None,
                end=parse_instant(end) if end else None,
                location=location,
                devices=[d for d in devices.split(",") if d] if devices else [],
            )
        except (TypeError, ValueError) as e:
            raise HTTPException(status_code=400, detail=f"Invalid date: {e}")

        state = request.app.state
        try:
            return await state.gate.run(x_consumer_id, lambda: build_dashboard(state.ctx, state.client, q))
        except Superseded:
            raise HTTPException(status_code=409, detail="Superseded by a newer request")

    @app.get("/api/greenbyte/turbines/{turbine_id}/details", response_model=TurbineDetails, response_model_by_alias=True)
    async def details(request: Request, turbine_id: int, day: Optional[date] = Query(default=None, alias="date")):
        ctx: FleetContext = request.app.state.ctx
        if ctx.registry.get(turbine_id) is None:
            raise HTTPException(status_code=404, detail=f"Unknown turbine {turbine_id}")
        return await turbine_details(ctx, request.app.state.client, turbine_id, day=day)

    @app.get("/api/turbines-risk", response_model=RiskResponse, response_model_by_alias=True)
    async def risk(request: Request):
        results = await turbines_at_risk(request.app.state.ctx, request.app.state.client)
        log.info("%d turbines at risk", len(results))
        return RiskResponse(turbines_at_risk=[TurbineRiskOut.from_risk(r) for r in results])

    return app

app = create_app()
