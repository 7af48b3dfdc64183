from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from .errors import RouteResolutionError
from .indoor_connections import INDOOR_CATALOG, IndoorCatalog, IndoorConnection
from .logging_utils import log_event
from .models import (
    IndoorConnectionListResponse,
    IndoorConnectionOut,
    LatLng,
    ResolveRequest,
    StationExitOut,
    StationListResponse,
    StationOut,
    SwitchActiveRequest,
    WalkingRoute,
    WalkingRoutesResponse,
)
from .render import GeoJSONMapState
from .resolver import WalkingRouteResolver
from .routing_gateway import DirectionsGateway, GatewayConfigError
from .settings import settings
from .stations import STATION_DIRECTORY, Station, StationDirectory


def build_gateway() -> DirectionsGateway:
    return DirectionsGateway(
        access_token=settings.mapbox_access_token,
        base_url=settings.directions_base_url,
        profile=settings.walking_profile,
        timeout_s=settings.gateway_timeout_s,
        connect_timeout_s=settings.gateway_connect_timeout_s,
        max_concurrency=settings.gateway_concurrency,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.directory = STATION_DIRECTORY
    app.state.catalog = INDOOR_CATALOG
    app.state.map_state = GeoJSONMapState()
    app.state.gateway = None
    app.state.resolver = None
    app.state.config_error = None
    try:
        app.state.gateway = build_gateway()
    except GatewayConfigError as e:
        # Reference data endpoints stay up; route resolution reports 503.
        app.state.config_error = str(e)
        log_event("gateway_not_configured", error=str(e))
    else:
        app.state.resolver = WalkingRouteResolver(
            directory=app.state.directory,
            catalog=app.state.catalog,
            gateway=app.state.gateway,
        )
    yield
    if app.state.gateway is not None:
        await app.state.gateway.aclose()


app = FastAPI(title="Station Walk Router", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def station_directory(request: Request) -> StationDirectory:
    directory: StationDirectory | None = getattr(request.app.state, "directory", None)  # type: ignore[attr-defined]
    return STATION_DIRECTORY if directory is None else directory


def indoor_catalog(request: Request) -> IndoorCatalog:
    catalog: IndoorCatalog | None = getattr(request.app.state, "catalog", None)  # type: ignore[attr-defined]
    return INDOOR_CATALOG if catalog is None else catalog


def map_state(request: Request) -> GeoJSONMapState:
    state: GeoJSONMapState | None = getattr(request.app.state, "map_state", None)  # type: ignore[attr-defined]
    if state is None:
        raise HTTPException(status_code=503, detail="map state not initialised")
    return state


def route_resolver(request: Request) -> WalkingRouteResolver:
    resolver: WalkingRouteResolver | None = getattr(request.app.state, "resolver", None)  # type: ignore[attr-defined]
    if resolver is None:
        err = RouteResolutionError(
            reason_code="routing_not_configured",
            message=getattr(request.app.state, "config_error", None) or "route resolver not initialised",
        )
        raise HTTPException(status_code=err.http_status, detail=err.as_detail())
    return resolver


DirectoryDep = Annotated[StationDirectory, Depends(station_directory)]
CatalogDep = Annotated[IndoorCatalog, Depends(indoor_catalog)]
MapDep = Annotated[GeoJSONMapState, Depends(map_state)]
ResolverDep = Annotated[WalkingRouteResolver, Depends(route_resolver)]


def _station_out(station: Station, near: LatLng | None = None) -> StationOut:
    nearest_name: str | None = None
    nearest_d: float | None = None
    if near is not None:
        ex, d = station.nearest_exit(near.as_lonlat())
        nearest_name, nearest_d = ex.name, round(d, 1)
    return StationOut(
        name=station.name,
        mode=station.mode,
        lines=list(station.lines),
        exits=[
            StationExitOut(name=ex.name, coordinates=ex.coordinates, description=ex.description)
            for ex in station.exits
        ],
        nearest_exit=nearest_name,
        nearest_exit_distance_m=nearest_d,
    )


def _connection_out(conn: IndoorConnection) -> IndoorConnectionOut:
    return IndoorConnectionOut(
        id=conn.id,
        name=conn.name,
        start_name=conn.start.name,
        start=conn.start.coordinates,
        end_name=conn.end.name,
        end=conn.end.coordinates,
        distance_m=conn.distance_m,
        duration_s=conn.duration_s,
        type=conn.type,
        features=list(conn.features),
        instructions=conn.instructions,
        is_bidirectional=conn.is_bidirectional,
        opening_hours=conn.opening_hours,
    )


def _session_response(resolver: WalkingRouteResolver) -> WalkingRoutesResponse:
    session = resolver.session
    return WalkingRoutesResponse(
        status=session.status.value,
        destination=LatLng.from_lonlat(session.destination) if session.destination else None,
        active_route_id=session.active_route_id,
        routes=resolver.current_routes(),
        error=session.error,
    )


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Backend is running. Visit /docs for the API UI.", "docs": "/docs"}


@app.get("/health")
async def health(request: Request) -> dict[str, Any]:
    configured = getattr(request.app.state, "resolver", None) is not None
    return {"status": "ok", "routing_configured": configured}


@app.get("/stations", response_model=StationListResponse)
async def list_stations(directory: DirectoryDep) -> StationListResponse:
    return StationListResponse(stations=[_station_out(st) for st in directory.stations()])


@app.get("/stations/lookup", response_model=StationOut)
async def lookup_station(
    directory: DirectoryDep,
    name: Annotated[str, Query(min_length=1)],
) -> StationOut:
    station = directory.lookup(name)
    if station is None:
        raise HTTPException(status_code=404, detail=f"station not found: {name}")
    return _station_out(station)


@app.get("/stations/near", response_model=StationListResponse)
async def stations_near(
    directory: DirectoryDep,
    lat: Annotated[float, Query(ge=-90, le=90)],
    lon: Annotated[float, Query(ge=-180, le=180)],
    radius_m: Annotated[float, Query(ge=0)] = settings.station_search_radius_m,
) -> StationListResponse:
    point = LatLng(lat=lat, lon=lon)
    stations = directory.find_near(point.as_lonlat(), radius_m)
    return StationListResponse(stations=[_station_out(st, near=point) for st in stations])


@app.get("/stations/nearest", response_model=StationListResponse)
async def stations_nearest(
    directory: DirectoryDep,
    lat: Annotated[float, Query(ge=-90, le=90)],
    lon: Annotated[float, Query(ge=-180, le=180)],
    n: Annotated[int, Query(ge=0, le=50)] = 3,
) -> StationListResponse:
    point = LatLng(lat=lat, lon=lon)
    stations = directory.find_nearest_n(point.as_lonlat(), n)
    return StationListResponse(stations=[_station_out(st, near=point) for st in stations])


@app.get("/indoor-connections", response_model=IndoorConnectionListResponse)
async def indoor_connections(
    catalog: CatalogDep,
    from_lat: Annotated[float | None, Query(ge=-90, le=90)] = None,
    from_lon: Annotated[float | None, Query(ge=-180, le=180)] = None,
    to_lat: Annotated[float | None, Query(ge=-90, le=90)] = None,
    to_lon: Annotated[float | None, Query(ge=-180, le=180)] = None,
    max_detour_m: Annotated[float, Query(ge=0)] = settings.indoor_max_detour_m,
) -> IndoorConnectionListResponse:
    endpoints = (from_lat, from_lon, to_lat, to_lon)
    if all(v is None for v in endpoints):
        return IndoorConnectionListResponse(
            connections=[_connection_out(c) for c in catalog.connections()]
        )
    if any(v is None for v in endpoints):
        raise HTTPException(
            status_code=400,
            detail="from_lat, from_lon, to_lat and to_lon must be given together",
        )
    usable = catalog.find_usable(
        (float(from_lon), float(from_lat)),  # type: ignore[arg-type]
        (float(to_lon), float(to_lat)),  # type: ignore[arg-type]
        max_detour_m,
    )
    return IndoorConnectionListResponse(connections=[_connection_out(c) for c in usable])


@app.post("/walking-routes", response_model=WalkingRoutesResponse)
async def resolve_walking_routes(
    req: ResolveRequest,
    resolver: ResolverDep,
    renderer: MapDep,
) -> WalkingRoutesResponse:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()

    try:
        routes = await resolver.resolve(req.destination.as_lonlat(), renderer)
    except RouteResolutionError as e:
        log_event(
            "walking_routes_request_failed",
            request_id=request_id,
            reason_code=e.reason_code,
            error=e.message,
        )
        raise HTTPException(status_code=e.http_status, detail=e.as_detail()) from e

    if routes is None:
        raise HTTPException(status_code=409, detail="superseded by a newer request")

    log_event(
        "walking_routes_request",
        request_id=request_id,
        destination=req.destination.model_dump(),
        route_count=len(routes),
        active_route_id=resolver.active_route_id,
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return _session_response(resolver)


@app.get("/walking-routes", response_model=WalkingRoutesResponse)
async def get_walking_routes(resolver: ResolverDep) -> WalkingRoutesResponse:
    return _session_response(resolver)


@app.post("/walking-routes/active", response_model=WalkingRoutesResponse)
async def switch_active_route(
    req: SwitchActiveRequest,
    resolver: ResolverDep,
    renderer: MapDep,
) -> WalkingRoutesResponse:
    try:
        await resolver.switch_active(req.route_id, renderer)
    except RouteResolutionError as e:
        raise HTTPException(status_code=e.http_status, detail=e.as_detail()) from e
    return _session_response(resolver)


@app.delete("/walking-routes", response_model=WalkingRoutesResponse)
async def clear_walking_routes(resolver: ResolverDep, renderer: MapDep) -> WalkingRoutesResponse:
    resolver.clear(renderer)
    return _session_response(resolver)


@app.get("/walking-routes/station", response_model=WalkingRoute)
async def walking_route_for_station(
    resolver: ResolverDep,
    name: Annotated[str, Query(min_length=1)],
) -> WalkingRoute:
    route = resolver.find_route_for_station_name(name)
    if route is None:
        raise HTTPException(status_code=404, detail=f"no walking route for station: {name}")
    return route


@app.get("/walking-routes/map")
async def walking_routes_map(renderer: MapDep) -> dict[str, Any]:
    return renderer.to_feature_collection()
