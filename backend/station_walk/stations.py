from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Literal, TypeVar

from .geo import LonLat, haversine_m

TransitMode = Literal["LRT", "MRT", "KTM", "Monorail"]

T = TypeVar("T")


@dataclass(frozen=True)
class StationExit:
    station_name: str
    name: str
    coordinates: LonLat
    description: str | None = None


@dataclass(frozen=True)
class Station:
    name: str
    exits: tuple[StationExit, ...]
    lines: tuple[str, ...]
    mode: TransitMode

    def nearest_exit(self, point: LonLat) -> tuple[StationExit, float]:
        """Closest exit to `point` and its straight-line distance in metres."""
        best = self.exits[0]
        best_d = haversine_m(point, best.coordinates)
        for ex in self.exits[1:]:
            d = haversine_m(point, ex.coordinates)
            if d < best_d:
                best, best_d = ex, d
        return best, best_d


def _station(
    name: str,
    mode: TransitMode,
    lines: Sequence[str],
    exits: Sequence[tuple[str, LonLat, str | None]],
) -> Station:
    if not exits:
        raise ValueError(f"station {name!r} needs at least one exit")
    return Station(
        name=name,
        exits=tuple(
            StationExit(station_name=name, name=exit_name, coordinates=coords, description=desc)
            for exit_name, coords, desc in exits
        ),
        lines=tuple(lines),
        mode=mode,
    )


# Name matching: first strategy that yields a hit wins; within a strategy, the first
# candidate in directory order wins. Best effort, not guaranteed unique.
NameMatcher = Callable[[str, str], bool]


def _match_exact(query: str, name: str) -> bool:
    return query == name


def _match_casefold(query: str, name: str) -> bool:
    return query.casefold() == name.casefold()


def _match_substring(query: str, name: str) -> bool:
    q = query.casefold()
    n = name.casefold()
    return q in n or n in q


NAME_MATCH_STRATEGIES: tuple[NameMatcher, ...] = (_match_exact, _match_casefold, _match_substring)


def match_by_name(query: str, items: Iterable[T], name_of: Callable[[T], str]) -> T | None:
    q = str(query or "").strip()
    if not q:
        return None
    pool = list(items)
    for strategy in NAME_MATCH_STRATEGIES:
        for item in pool:
            if strategy(q, name_of(item)):
                return item
    return None


class StationDirectory:
    """Read-only station reference data with exit-based proximity queries."""

    def __init__(self, stations: Iterable[Station]) -> None:
        self._stations: tuple[Station, ...] = tuple(stations)
        seen: set[str] = set()
        for st in self._stations:
            key = st.name.casefold()
            if key in seen:
                raise ValueError(f"duplicate station name: {st.name}")
            seen.add(key)

    def __len__(self) -> int:
        return len(self._stations)

    def stations(self) -> list[Station]:
        return list(self._stations)

    def _ranked(self, point: LonLat) -> list[tuple[Station, float]]:
        ranked = [(st, st.nearest_exit(point)[1]) for st in self._stations]
        # sort() is stable, so equal distances keep directory order.
        ranked.sort(key=lambda pair: pair[1])
        return ranked

    def find_near(self, point: LonLat, radius_m: float) -> list[Station]:
        return [st for st, d in self._ranked(point) if d <= radius_m]

    def find_nearest_n(self, point: LonLat, n: int) -> list[Station]:
        if n <= 0:
            return []
        return [st for st, _d in self._ranked(point)[:n]]

    def lookup(self, name: str) -> Station | None:
        return match_by_name(name, self._stations, lambda st: st.name)


KL_STATIONS: tuple[Station, ...] = (
    _station(
        "KL Sentral",
        "KTM",
        ["KTM", "LRT Kelana Jaya Line", "MRT Kajang Line", "KLIA Transit"],
        [
            ("Level 2 Connection", (101.6860, 3.1340), "Link level towards NU Sentral"),
            ("Jalan Stesen Sentral", (101.6866, 3.1330), "Taxi and bus drop-off"),
        ],
    ),
    _station(
        "Masjid Jamek LRT",
        "LRT",
        ["LRT Ampang Line", "LRT Sri Petaling Line", "LRT Kelana Jaya Line"],
        [
            ("Entrance A", (101.69646, 3.14968), "Jalan Tun Perak"),
            ("Entrance B", (101.6958, 3.1490), "Jalan Melaka"),
        ],
    ),
    _station(
        "Pasar Seni",
        "LRT",
        ["LRT Kelana Jaya Line", "MRT Kajang Line"],
        [
            ("LRT Concourse", (101.69531, 3.14247), "Jalan Sultan Mohamed"),
            ("Entrance A", (101.6947, 3.1419), "Towards Central Market"),
            ("MRT Concourse", (101.6953, 3.1422), None),
        ],
    ),
    _station(
        "KLCC",
        "LRT",
        ["LRT Kelana Jaya Line"],
        [
            ("Suria KLCC Concourse", (101.71396, 3.15933), "Inside Suria KLCC"),
            ("Jalan Ampang", (101.7132, 3.1598), None),
        ],
    ),
    _station(
        "Persiaran KLCC",
        "MRT",
        ["MRT Putrajaya Line"],
        [
            ("Entrance A", (101.718422, 3.1573407), "Persiaran KLCC"),
            ("Entrance B", (101.7178, 3.1566), "Jalan Binjai"),
        ],
    ),
    _station(
        "Ampang Park",
        "LRT",
        ["LRT Kelana Jaya Line"],
        [("Main Entrance", (101.7183, 3.1588), "Jalan Ampang")],
    ),
    _station(
        "Brickfields",
        "KTM",
        ["KTM Komuter"],
        [("Jalan Tun Sambanthan", (101.6847, 3.1329), None)],
    ),
    _station(
        "Muzium Negara MRT",
        "MRT",
        ["MRT Kajang Line"],
        [
            ("Entrance A", (101.6875, 3.1370), "Jalan Damansara"),
            ("Entrance B", (101.6882, 3.1379), "Muzium Negara forecourt"),
            ("Entrance C", (101.6878, 3.1375), "Covered walkway to NU Sentral"),
        ],
    ),
    _station(
        "Bandaraya",
        "LRT",
        ["LRT Kelana Jaya Line"],
        [("Jalan Raja Laut", (101.69442589509586, 3.1556520223802424), None)],
    ),
    _station(
        "Bukit Bintang Monorail",
        "Monorail",
        ["KL Monorail"],
        [
            ("Main Entrance", (101.7111, 3.1458), "Jalan Bukit Bintang"),
            ("Jalan Sultan Ismail", (101.7116, 3.1462), None),
        ],
    ),
    _station(
        "Bukit Bintang MRT",
        "MRT",
        ["MRT Kajang Line"],
        [
            ("Entrance A", (101.7103, 3.1471), "Pavilion Kuala Lumpur"),
            ("Entrance C", (101.7096, 3.1464), "Jalan Bukit Bintang"),
        ],
    ),
    _station(
        "Raja Chulan Monorail",
        "Monorail",
        ["KL Monorail"],
        [("Main Entrance", (101.7104, 3.1508), "Jalan Sultan Ismail")],
    ),
)

STATION_DIRECTORY = StationDirectory(KL_STATIONS)
