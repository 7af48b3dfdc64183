from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from .geo import LonLat, bounding_box

ROUTE_ACTIVE_STYLE: dict[str, float] = {"line-width": 6.0, "line-opacity": 0.95}
ROUTE_MUTED_STYLE: dict[str, float] = {"line-width": 4.0, "line-opacity": 0.45}
MUTED_COLOR = "#9AA5B1"

ClickHandler = Callable[[], object]


class RouteRenderer(Protocol):
    """Map surface the resolver draws on; it never sees the rendering technology."""

    def draw_route(
        self,
        route_id: str,
        coordinates: list[LonLat],
        *,
        color: str,
        active: bool,
        on_click: ClickHandler,
    ) -> None: ...

    def set_route_style(self, route_id: str, *, color: str, active: bool) -> None: ...

    def raise_route(self, route_id: str) -> None: ...

    def remove_routes(self, route_ids: list[str]) -> None: ...

    async def add_endpoint_markers(
        self,
        *,
        route_id: str,
        station_name: str,
        exit_coordinates: LonLat,
        destination: LonLat,
        color: str,
    ) -> list[str]: ...

    def remove_markers(self, marker_ids: list[str]) -> None: ...

    def fit_bounds(self, points: list[LonLat]) -> None: ...


def _line_paint(color: str, active: bool) -> dict[str, Any]:
    style = ROUTE_ACTIVE_STYLE if active else ROUTE_MUTED_STYLE
    return {"line-color": color if active else MUTED_COLOR, "route-color": color, **style}


class GeoJSONMapState:
    """In-memory renderer keeping the drawn map as GeoJSON features."""

    def __init__(self) -> None:
        self._routes: dict[str, dict[str, Any]] = {}
        self._z_order: list[str] = []
        self._handlers: dict[str, ClickHandler] = {}
        self._markers: dict[str, dict[str, Any]] = {}
        self._marker_seq = 0
        self.viewport: tuple[LonLat, LonLat] | None = None

    def draw_route(
        self,
        route_id: str,
        coordinates: list[LonLat],
        *,
        color: str,
        active: bool,
        on_click: ClickHandler,
    ) -> None:
        self._routes[route_id] = {
            "type": "Feature",
            "id": route_id,
            "geometry": {"type": "LineString", "coordinates": [list(c) for c in coordinates]},
            "properties": {"route_id": route_id, "active": active, **_line_paint(color, active)},
        }
        if route_id in self._z_order:
            self._z_order.remove(route_id)
        self._z_order.append(route_id)
        self._handlers[route_id] = on_click

    def set_route_style(self, route_id: str, *, color: str, active: bool) -> None:
        feature = self._routes.get(route_id)
        if feature is None:
            return
        feature["properties"].update({"active": active, **_line_paint(color, active)})

    def raise_route(self, route_id: str) -> None:
        if route_id in self._z_order:
            self._z_order.remove(route_id)
            self._z_order.append(route_id)

    def remove_routes(self, route_ids: list[str]) -> None:
        for route_id in route_ids:
            self._routes.pop(route_id, None)
            self._handlers.pop(route_id, None)
            if route_id in self._z_order:
                self._z_order.remove(route_id)

    async def add_endpoint_markers(
        self,
        *,
        route_id: str,
        station_name: str,
        exit_coordinates: LonLat,
        destination: LonLat,
        color: str,
    ) -> list[str]:
        ids: list[str] = []
        for role, coords, label in (
            ("exit", exit_coordinates, station_name),
            ("destination", destination, "Destination"),
        ):
            self._marker_seq += 1
            marker_id = f"marker-{self._marker_seq}"
            self._markers[marker_id] = {
                "type": "Feature",
                "id": marker_id,
                "geometry": {"type": "Point", "coordinates": list(coords)},
                "properties": {"role": role, "label": label, "route_id": route_id, "color": color},
            }
            ids.append(marker_id)
        return ids

    def remove_markers(self, marker_ids: list[str]) -> None:
        for marker_id in marker_ids:
            self._markers.pop(marker_id, None)

    def fit_bounds(self, points: list[LonLat]) -> None:
        self.viewport = bounding_box(points)

    def click(self, route_id: str) -> object:
        """Simulate a click on a drawn route layer."""
        handler = self._handlers.get(route_id)
        if handler is None:
            raise KeyError(route_id)
        return handler()

    @property
    def route_ids(self) -> list[str]:
        """Drawn routes, bottom-most first."""
        return list(self._z_order)

    @property
    def marker_ids(self) -> list[str]:
        return list(self._markers)

    def route_feature(self, route_id: str) -> dict[str, Any] | None:
        return self._routes.get(route_id)

    def to_feature_collection(self) -> dict[str, Any]:
        features = [self._routes[rid] for rid in self._z_order]
        features.extend(self._markers.values())
        bbox = None
        if self.viewport is not None:
            (w, s), (e, n) = self.viewport
            bbox = [w, s, e, n]
        return {"type": "FeatureCollection", "bbox": bbox, "features": features}
