from __future__ import annotations

import math
from collections.abc import Iterable

# (lon, lat), GeoJSON order everywhere in this package.
LonLat = tuple[float, float]

EARTH_RADIUS_M = 6_371_000.0

ROUTE_COLORS: tuple[str, ...] = (
    "#FF6B6B",  # red
    "#4ECDC4",  # teal
    "#45B7D1",  # blue
    "#96CEB4",  # green
    "#FFEAA7",  # yellow
    "#DDA0DD",  # plum
    "#98D8C8",  # mint
    "#F7DC6F",  # light yellow
    "#BB8FCE",  # light purple
    "#85C1E9",  # light blue
)


def haversine_m(a: LonLat, b: LonLat) -> float:
    """Great-circle distance in metres between two (lon, lat) points."""
    lon1, lat1 = a
    lon2, lat2 = b
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)
    h = (
        math.sin(dphi / 2.0) ** 2
        + (math.cos(phi1) * math.cos(phi2) * (math.sin(dlambda / 2.0) ** 2))
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(max(0.0, h))))


def _name_hash(name: str) -> int:
    # 31-multiplier string hash, wrapped to a signed 32-bit integer at every step.
    h = 0
    for ch in name:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
        if h >= 0x80000000:
            h -= 0x100000000
    return h


def route_color(station_name: str, index: int = 0) -> str:
    """Deterministic palette colour for a station's route."""
    return ROUTE_COLORS[(abs(_name_hash(station_name)) + int(index)) % len(ROUTE_COLORS)]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_distance(meters: float) -> str:
    if meters < 1000:
        return f"{_round_half_up(meters)}m"
    return f"{meters / 1000.0:.1f}km"


def format_duration(seconds: float) -> str:
    minutes = _round_half_up(seconds / 60.0)
    if minutes < 60:
        return f"{minutes} min{'s' if minutes != 1 else ''}"

    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours}h"
    return f"{hours}h {remaining}m"


def bounding_box(points: Iterable[LonLat]) -> tuple[LonLat, LonLat] | None:
    """Return ((min_lon, min_lat), (max_lon, max_lat)) or None for no points."""
    pts = list(points)
    if not pts:
        return None
    lons = [p[0] for p in pts]
    lats = [p[1] for p in pts]
    return (min(lons), min(lats)), (max(lons), max(lats))
