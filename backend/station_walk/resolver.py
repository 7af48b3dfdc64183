"""Station-exit to destination walking route resolution.

One resolver owns one `ResolutionSession`. Every resolution bumps the session
generation and cancels the previous token; continuations compare their captured
generation with the live one before touching the session or the renderer.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from .errors import RouteResolutionError
from .geo import LonLat, format_distance, format_duration, route_color
from .indoor_connections import IndoorCatalog, IndoorConnection, indoor_percentage
from .logging_utils import log_event
from .models import GeoJSONLineString, RouteStep, WalkingRoute
from .render import ClickHandler, RouteRenderer
from .routing_gateway import (
    CancelToken,
    GatewayError,
    RequestCancelled,
    WalkingDirections,
    WalkingMatrix,
    WalkingStep,
    is_crossing_instruction,
)
from .settings import settings
from .stations import Station, StationDirectory, StationExit, match_by_name


class WalkingGateway(Protocol):
    def matrix(
        self,
        origin: LonLat,
        destinations: list[LonLat],
        *,
        cancel: CancelToken | None = None,
    ) -> Awaitable[WalkingMatrix]: ...

    def directions(
        self,
        start: LonLat,
        end: LonLat,
        *,
        cancel: CancelToken | None = None,
    ) -> Awaitable[WalkingDirections]: ...


class SessionStatus(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    SWITCHING = "switching"
    FAILED = "failed"


@dataclass
class ResolutionSession:
    generation: int = 0
    status: SessionStatus = SessionStatus.IDLE
    token: CancelToken | None = None
    destination: LonLat | None = None
    routes: list[WalkingRoute] = field(default_factory=list)
    active_route_id: str | None = None
    drawn_route_ids: list[str] = field(default_factory=list)
    marker_ids: list[str] = field(default_factory=list)
    error: str | None = None
    # Bumped per endpoint-marker placement so a slower, older placement is discarded.
    marker_request: int = 0

    def invalidate(self) -> None:
        if self.token is not None:
            self.token.cancel()
            self.token = None
        self.generation += 1

    def begin(self, destination: LonLat) -> CancelToken:
        self.invalidate()
        self.token = CancelToken()
        self.status = SessionStatus.RESOLVING
        self.destination = destination
        self.routes = []
        self.active_route_id = None
        self.error = None
        return self.token

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def active_route(self) -> WalkingRoute | None:
        for route in self.routes:
            if route.route_id == self.active_route_id:
                return route
        return None


@dataclass(frozen=True)
class RouteCandidate:
    station: Station
    exit: StationExit
    distance_m: float
    duration_s: float
    geometry: list[LonLat]
    steps: list[WalkingStep]
    is_indoor: bool = False
    connection: IndoorConnection | None = None
    indoor_percentage: int = 0

    def score(self, indoor_score_factor: float) -> float:
        return self.duration_s * indoor_score_factor if self.is_indoor else self.duration_s


def indoor_candidate(
    station: Station,
    station_exit: StationExit,
    connection: IndoorConnection,
    destination: LonLat,
) -> RouteCandidate:
    return RouteCandidate(
        station=station,
        exit=station_exit,
        distance_m=connection.distance_m,
        duration_s=connection.duration_s,
        geometry=[connection.start.coordinates, connection.end.coordinates],
        steps=[
            WalkingStep(
                instruction=connection.instructions,
                distance_m=connection.distance_m,
                duration_s=connection.duration_s,
                street_name=connection.name,
                is_crossing=is_crossing_instruction(connection.instructions),
            )
        ],
        is_indoor=True,
        connection=connection,
        indoor_percentage=indoor_percentage(connection, station_exit.coordinates, destination),
    )


def select_best_per_station(
    candidates: Iterable[RouteCandidate],
    indoor_score_factor: float,
) -> list[RouteCandidate]:
    """Lowest-score exit per station; ties keep the first candidate seen.

    Zero-duration candidates carry no usable walk and never compete, so a
    station keeps its other exits when one exit sits on the destination.
    """
    best: dict[str, RouteCandidate] = {}
    for cand in candidates:
        if cand.duration_s <= 0:
            continue
        current = best.get(cand.station.name)
        if current is None or cand.score(indoor_score_factor) < current.score(indoor_score_factor):
            best[cand.station.name] = cand
    return list(best.values())


def filter_reachable(candidates: Iterable[RouteCandidate], max_duration_s: float) -> list[RouteCandidate]:
    return [c for c in candidates if 0 < c.duration_s <= max_duration_s]


def rank_candidates(candidates: Iterable[RouteCandidate]) -> list[RouteCandidate]:
    return sorted(candidates, key=lambda c: c.duration_s)


def build_walking_routes(ranked: Sequence[RouteCandidate]) -> list[WalkingRoute]:
    routes: list[WalkingRoute] = []
    for i, cand in enumerate(ranked):
        conn = cand.connection
        routes.append(
            WalkingRoute(
                route_id=f"walking-route-{i}",
                station_name=cand.station.name,
                station_mode=cand.station.mode,
                lines=list(cand.station.lines),
                exit_name=cand.exit.name,
                exit_description=cand.exit.description,
                coordinates=cand.exit.coordinates,
                distance_m=cand.distance_m,
                duration_s=cand.duration_s,
                formatted_distance=format_distance(cand.distance_m) if cand.distance_m > 0 else "",
                formatted_duration=format_duration(cand.duration_s),
                geometry=(
                    GeoJSONLineString(coordinates=list(cand.geometry))
                    if len(cand.geometry) >= 2
                    else None
                ),
                steps=[
                    RouteStep(
                        instruction=s.instruction,
                        distance_m=s.distance_m,
                        duration_s=s.duration_s,
                        street_name=s.street_name,
                        is_crossing=s.is_crossing,
                    )
                    for s in cand.steps
                ],
                color=route_color(cand.station.name, i),
                has_indoor_route=cand.is_indoor,
                indoor_percentage=cand.indoor_percentage if cand.is_indoor else 0,
                indoor_features=list(conn.features) if conn is not None else [],
                indoor_connection_id=conn.id if conn is not None else None,
                indoor_connection_name=conn.name if conn is not None else None,
            )
        )
    return routes


class WalkingRouteResolver:
    def __init__(
        self,
        *,
        directory: StationDirectory,
        catalog: IndoorCatalog,
        gateway: WalkingGateway,
        search_radius_m: float | None = None,
        max_walk_duration_s: float | None = None,
        indoor_max_detour_m: float | None = None,
        indoor_score_factor: float | None = None,
        use_matrix: bool | None = None,
    ) -> None:
        self.directory = directory
        self.catalog = catalog
        self.gateway = gateway
        self.search_radius_m = (
            settings.station_search_radius_m if search_radius_m is None else float(search_radius_m)
        )
        self.max_walk_duration_s = (
            settings.max_walk_duration_s if max_walk_duration_s is None else float(max_walk_duration_s)
        )
        self.indoor_max_detour_m = (
            settings.indoor_max_detour_m if indoor_max_detour_m is None else float(indoor_max_detour_m)
        )
        self.indoor_score_factor = (
            settings.indoor_score_factor if indoor_score_factor is None else float(indoor_score_factor)
        )
        self.use_matrix = settings.use_matrix if use_matrix is None else bool(use_matrix)
        self.session = ResolutionSession()
        self._background: set[asyncio.Task[WalkingRoute]] = set()

    # ---- read side -------------------------------------------------------

    def current_routes(self) -> list[WalkingRoute]:
        return list(self.session.routes)

    @property
    def active_route_id(self) -> str | None:
        return self.session.active_route_id

    def find_route_for_station_name(self, name: str) -> WalkingRoute | None:
        return match_by_name(name, self.session.routes, lambda r: r.station_name)

    # ---- candidate collection ---------------------------------------------

    async def _collect_candidates(
        self,
        stations: list[Station],
        destination: LonLat,
        token: CancelToken,
    ) -> tuple[list[RouteCandidate], list[GatewayError]]:
        pairs: list[tuple[Station, StationExit]] = [(st, ex) for st in stations for ex in st.exits]
        by_index: dict[int, RouteCandidate] = {}
        outdoor: list[int] = []

        for i, (station, station_exit) in enumerate(pairs):
            usable = self.catalog.find_usable(
                station_exit.coordinates,
                destination,
                self.indoor_max_detour_m,
            )
            if usable:
                # Catalog order, not shortest.
                by_index[i] = indoor_candidate(station, station_exit, usable[0], destination)
            else:
                outdoor.append(i)

        failures: list[GatewayError] = []
        if outdoor:
            jobs: list[Awaitable[object]] = []
            if self.use_matrix:
                jobs.append(
                    self.gateway.matrix(
                        destination,
                        [pairs[i][1].coordinates for i in outdoor],
                        cancel=token,
                    )
                )
            jobs.extend(
                self.gateway.directions(pairs[i][1].coordinates, destination, cancel=token)
                for i in outdoor
            )
            results = await asyncio.gather(*jobs, return_exceptions=True)

            if token.cancelled or any(isinstance(r, RequestCancelled) for r in results):
                raise RequestCancelled("resolution superseded")
            for r in results:
                if isinstance(r, BaseException) and not isinstance(r, GatewayError):
                    raise r

            matrix: WalkingMatrix | None = None
            dir_results = results
            if self.use_matrix:
                head, dir_results = results[0], results[1:]
                if isinstance(head, GatewayError):
                    log_event("walking_matrix_failed", error=str(head), kind=head.kind)
                elif isinstance(head, WalkingMatrix):
                    matrix = head

            for k, i in enumerate(outdoor):
                station, station_exit = pairs[i]
                result = dir_results[k]
                if isinstance(result, GatewayError):
                    failures.append(result)
                    log_event(
                        "walking_route_pair_failed",
                        station=station.name,
                        exit=station_exit.name,
                        error=str(result),
                        kind=result.kind,
                    )
                    continue
                if not isinstance(result, WalkingDirections):
                    continue

                distance_m = result.distance_m
                duration_s = result.duration_s
                if matrix is not None:
                    if k < len(matrix.distances_m) and matrix.distances_m[k] is not None:
                        distance_m = float(matrix.distances_m[k])
                    if k < len(matrix.durations_s) and matrix.durations_s[k] is not None:
                        duration_s = float(matrix.durations_s[k])

                by_index[i] = RouteCandidate(
                    station=station,
                    exit=station_exit,
                    distance_m=distance_m,
                    duration_s=duration_s,
                    geometry=list(result.geometry),
                    steps=list(result.steps),
                )

        return [by_index[i] for i in sorted(by_index)], failures

    # ---- rendering -------------------------------------------------------

    def _remove_artifacts(self, renderer: RouteRenderer | None) -> None:
        session = self.session
        if renderer is not None:
            renderer.remove_routes(list(session.drawn_route_ids))
            renderer.remove_markers(list(session.marker_ids))
        session.drawn_route_ids = []
        session.marker_ids = []

    def _on_switch_done(self, task: asyncio.Task[WalkingRoute]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_event("walking_route_switch_failed", error=str(exc), error_type=type(exc).__name__)

    def _click_handler(
        self,
        route_id: str,
        renderer: RouteRenderer,
        destination: LonLat,
    ) -> ClickHandler:
        def _on_click() -> asyncio.Task[WalkingRoute]:
            task = asyncio.get_running_loop().create_task(
                self.switch_active(route_id, renderer, destination)
            )
            self._background.add(task)
            task.add_done_callback(self._on_switch_done)
            return task

        return _on_click

    def _draw_routes(
        self,
        renderer: RouteRenderer,
        routes: list[WalkingRoute],
        destination: LonLat,
    ) -> None:
        session = self.session
        active_id = session.active_route_id
        bounds: list[LonLat] = [destination]
        drawn: list[str] = []

        for route in routes:
            if route.geometry is None:
                continue
            coords = [(float(lon), float(lat)) for lon, lat in route.geometry.coordinates]
            renderer.draw_route(
                route.route_id,
                coords,
                color=route.color,
                active=route.route_id == active_id,
                on_click=self._click_handler(route.route_id, renderer, destination),
            )
            drawn.append(route.route_id)
            bounds.extend(coords)

        if active_id is not None and active_id in drawn:
            renderer.raise_route(active_id)
        session.drawn_route_ids = drawn
        if len(bounds) > 1:
            renderer.fit_bounds(bounds)

    async def _place_endpoint_markers(
        self,
        renderer: RouteRenderer,
        route: WalkingRoute,
        destination: LonLat,
        *,
        generation: int,
        request: int,
    ) -> bool:
        session = self.session
        marker_ids = await renderer.add_endpoint_markers(
            route_id=route.route_id,
            station_name=route.station_name,
            exit_coordinates=route.coordinates,
            destination=destination,
            color=route.color,
        )
        if not session.is_current(generation) or session.marker_request != request:
            # Superseded while the markers were being created.
            renderer.remove_markers(marker_ids)
            return False
        session.marker_ids = list(marker_ids)
        return True

    # ---- public operations ------------------------------------------------

    async def resolve(
        self,
        destination: LonLat,
        renderer: RouteRenderer | None = None,
    ) -> list[WalkingRoute] | None:
        """Resolve walking routes to `destination`, replacing any earlier resolution.

        Returns the ranked routes, or None when a newer resolve/clear superseded
        this one before it finished.
        """
        session = self.session
        token = session.begin(destination)
        generation = session.generation
        try:
            return await self._resolve_current(destination, renderer, token, generation)
        except RouteResolutionError:
            raise
        except Exception as e:
            if session.is_current(generation):
                session.status = SessionStatus.FAILED
                session.token = None
                session.error = f"{type(e).__name__}: {e}"
                log_event(
                    "walking_routes_failed",
                    destination=list(destination),
                    error=session.error,
                )
            raise

    async def _resolve_current(
        self,
        destination: LonLat,
        renderer: RouteRenderer | None,
        token: CancelToken,
        generation: int,
    ) -> list[WalkingRoute] | None:
        session = self.session
        self._remove_artifacts(renderer)
        t0 = time.perf_counter()

        stations = self.directory.find_near(destination, self.search_radius_m)
        if not stations:
            session.status = SessionStatus.RESOLVED
            session.token = None
            log_event(
                "walking_routes_resolved",
                destination=list(destination),
                station_count=0,
                route_count=0,
                duration_ms=round((time.perf_counter() - t0) * 1000, 2),
            )
            return []

        try:
            candidates, failures = await self._collect_candidates(stations, destination, token)
        except RequestCancelled:
            log_event("walking_routes_superseded", destination=list(destination), generation=generation)
            return None

        if not session.is_current(generation):
            log_event("walking_routes_superseded", destination=list(destination), generation=generation)
            return None

        if not candidates and any(f.is_outage for f in failures):
            message = "Failed to load walking directions"
            session.status = SessionStatus.FAILED
            session.token = None
            session.error = message
            log_event(
                "walking_routes_failed",
                destination=list(destination),
                failed_pairs=len(failures),
                first_error=str(failures[0]),
                duration_ms=round((time.perf_counter() - t0) * 1000, 2),
            )
            raise RouteResolutionError(
                reason_code="routing_service_unavailable",
                message=message,
                details={"failed_pairs": len(failures), "first_error": str(failures[0])},
            )

        selected = select_best_per_station(candidates, self.indoor_score_factor)
        ranked = rank_candidates(filter_reachable(selected, self.max_walk_duration_s))
        routes = build_walking_routes(ranked)

        session.routes = routes
        session.active_route_id = routes[0].route_id if routes else None
        session.status = SessionStatus.RESOLVED
        session.token = None

        if renderer is not None and routes:
            self._draw_routes(renderer, routes, destination)
            session.marker_request += 1
            await self._place_endpoint_markers(
                renderer,
                routes[0],
                destination,
                generation=generation,
                request=session.marker_request,
            )
            if not session.is_current(generation):
                log_event("walking_routes_superseded", destination=list(destination), generation=generation)
                return None

        log_event(
            "walking_routes_resolved",
            destination=list(destination),
            station_count=len(stations),
            candidate_count=len(candidates),
            failed_pairs=len(failures),
            route_count=len(routes),
            active_route_id=session.active_route_id,
            indoor_route_count=sum(1 for r in routes if r.has_indoor_route),
            duration_ms=round((time.perf_counter() - t0) * 1000, 2),
        )
        return routes

    async def switch_active(
        self,
        route_id: str,
        renderer: RouteRenderer | None,
        destination: LonLat | None = None,
    ) -> WalkingRoute:
        """Make `route_id` the active route using already-resolved data only."""
        session = self.session
        if session.status not in (SessionStatus.RESOLVED, SessionStatus.SWITCHING):
            raise RouteResolutionError(
                reason_code="no_active_resolution",
                message=f"Cannot switch routes while session is {session.status.value}",
            )
        target = next((r for r in session.routes if r.route_id == route_id), None)
        if target is None:
            raise RouteResolutionError(
                reason_code="route_not_found",
                message=f"Unknown walking route: {route_id}",
            )

        generation = session.generation
        previous = session.active_route()
        session.status = SessionStatus.SWITCHING
        session.active_route_id = route_id
        session.marker_request += 1
        request = session.marker_request

        if renderer is not None:
            if previous is not None and previous.route_id != route_id and previous.route_id in session.drawn_route_ids:
                renderer.set_route_style(previous.route_id, color=previous.color, active=False)
            if route_id in session.drawn_route_ids:
                renderer.set_route_style(route_id, color=target.color, active=True)
                renderer.raise_route(route_id)
            renderer.remove_markers(list(session.marker_ids))
            session.marker_ids = []
            end = destination if destination is not None else session.destination
            if end is not None:
                await self._place_endpoint_markers(
                    renderer,
                    target,
                    end,
                    generation=generation,
                    request=request,
                )

        if session.is_current(generation) and session.marker_request == request:
            session.status = SessionStatus.RESOLVED

        log_event(
            "walking_route_switched",
            route_id=route_id,
            previous_route_id=previous.route_id if previous is not None else None,
            station=target.station_name,
        )
        return target

    def clear(self, renderer: RouteRenderer | None = None) -> None:
        session = self.session
        session.invalidate()
        self._remove_artifacts(renderer)
        session.status = SessionStatus.IDLE
        session.destination = None
        session.routes = []
        session.active_route_id = None
        session.error = None
        log_event("walking_routes_cleared", generation=session.generation)
