from __future__ import annotations

import asyncio

import pytest

from station_walk.render import MUTED_COLOR, ROUTE_ACTIVE_STYLE, ROUTE_MUTED_STYLE, GeoJSONMapState

LINE = [(101.70, 3.15), (101.71, 3.16)]


def test_draw_restyle_and_raise() -> None:
    m = GeoJSONMapState()
    clicks: list[str] = []
    m.draw_route("r0", LINE, color="#FF6B6B", active=True, on_click=lambda: clicks.append("r0"))
    m.draw_route("r1", LINE, color="#4ECDC4", active=False, on_click=lambda: clicks.append("r1"))

    assert m.route_ids == ["r0", "r1"]
    r1 = m.route_feature("r1")
    assert r1 is not None
    assert r1["properties"]["line-color"] == MUTED_COLOR
    assert r1["properties"]["route-color"] == "#4ECDC4"
    assert r1["properties"]["line-width"] == ROUTE_MUTED_STYLE["line-width"]

    m.set_route_style("r1", color="#4ECDC4", active=True)
    assert r1["properties"]["line-color"] == "#4ECDC4"
    assert r1["properties"]["line-width"] == ROUTE_ACTIVE_STYLE["line-width"]

    m.raise_route("r0")
    assert m.route_ids == ["r1", "r0"]

    m.click("r1")
    assert clicks == ["r1"]
    with pytest.raises(KeyError):
        m.click("missing")


def test_remove_routes_and_markers() -> None:
    m = GeoJSONMapState()
    m.draw_route("r0", LINE, color="#FF6B6B", active=True, on_click=lambda: None)
    ids = asyncio.run(
        m.add_endpoint_markers(
            route_id="r0",
            station_name="KLCC",
            exit_coordinates=LINE[0],
            destination=LINE[1],
            color="#FF6B6B",
        )
    )
    assert ids == ["marker-1", "marker-2"]
    assert m.marker_ids == ids

    m.remove_routes(["r0", "unknown"])
    m.remove_markers(ids)
    assert m.route_ids == []
    assert m.marker_ids == []
    # Unknown ids are ignored.
    m.set_route_style("r0", color="#FF6B6B", active=False)


def test_feature_collection_with_viewport() -> None:
    m = GeoJSONMapState()
    assert m.to_feature_collection() == {"type": "FeatureCollection", "bbox": None, "features": []}

    m.draw_route("r0", LINE, color="#FF6B6B", active=True, on_click=lambda: None)
    m.fit_bounds(LINE)
    fc = m.to_feature_collection()
    assert fc["bbox"] == [101.70, 3.15, 101.71, 3.16]
    assert fc["features"][0]["geometry"] == {
        "type": "LineString",
        "coordinates": [[101.70, 3.15], [101.71, 3.16]],
    }
