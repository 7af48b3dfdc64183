from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, replace
from typing import Literal

from .geo import LonLat, haversine_m

ConnectionType = Literal["mall", "underground", "skybridge", "covered_walkway"]


@dataclass(frozen=True)
class IndoorPoint:
    name: str
    coordinates: LonLat


@dataclass(frozen=True)
class IndoorConnection:
    """An authored walkway that public routing data does not model."""

    id: str
    name: str
    start: IndoorPoint
    end: IndoorPoint
    distance_m: float
    duration_s: float
    type: ConnectionType
    features: tuple[str, ...]
    instructions: str
    is_bidirectional: bool
    opening_hours: str | None = None

    def reversed(self) -> IndoorConnection:
        return replace(
            self,
            id=f"{self.id}-reverse",
            name=" ↔ ".join(part.strip() for part in reversed(self.name.split("↔"))),
            start=self.end,
            end=self.start,
        )

    def directed_views(self) -> Iterator[IndoorConnection]:
        """Forward edge, then the derived reverse edge when walkable both ways."""
        yield self
        if self.is_bidirectional:
            yield self.reversed()


def indoor_percentage(connection: IndoorConnection, origin: LonLat, destination: LonLat) -> int:
    """Share of the walk covered by the connection, with straight-line approach legs."""
    approach = haversine_m(origin, connection.start.coordinates)
    egress = haversine_m(connection.end.coordinates, destination)
    total = connection.distance_m + approach + egress
    if total <= 0:
        return 100
    return int(round(100.0 * connection.distance_m / total))


class IndoorCatalog:
    def __init__(self, connections: Iterable[IndoorConnection]) -> None:
        self._connections: tuple[IndoorConnection, ...] = tuple(connections)

    def __len__(self) -> int:
        return len(self._connections)

    def connections(self) -> list[IndoorConnection]:
        return list(self._connections)

    def find_usable(
        self,
        origin: LonLat,
        destination: LonLat,
        max_detour_m: float = 150.0,
    ) -> list[IndoorConnection]:
        """Connections reachable from `origin` that deliver close to `destination`.

        Result is in catalog order (a reverse view directly follows its forward entry),
        not ranked by distance or duration.
        """
        usable: list[IndoorConnection] = []
        for authored in self._connections:
            for conn in authored.directed_views():
                if haversine_m(origin, conn.start.coordinates) > max_detour_m:
                    continue
                if haversine_m(conn.end.coordinates, destination) > max_detour_m:
                    continue
                usable.append(conn)
        return usable


_KL_SENTRAL_L2 = IndoorPoint("KL Sentral Level 2", (101.6860, 3.1340))
_NU_SENTRAL = IndoorPoint("NU Sentral Shopping Centre", (101.6869, 3.1334))
_MUZIUM_NEGARA_C = IndoorPoint("Muzium Negara MRT Entrance C", (101.6878, 3.1375))

KL_INDOOR_CONNECTIONS: tuple[IndoorConnection, ...] = (
    IndoorConnection(
        id="kl-sentral-nu-sentral",
        name="KL Sentral ↔ NU Sentral Mall",
        start=_KL_SENTRAL_L2,
        end=_NU_SENTRAL,
        distance_m=150.0,
        duration_s=120.0,
        type="mall",
        features=("air-conditioned", "escalators", "wheelchair accessible", "restrooms"),
        opening_hours="5:30am - 12:00am daily",
        instructions=(
            "From KL Sentral, take escalator to Level 2 Connection Level. "
            "Walk straight into NU Sentral shopping mall."
        ),
        is_bidirectional=True,
    ),
    IndoorConnection(
        id="nu-sentral-muzium-negara",
        name="NU Sentral ↔ Muzium Negara MRT",
        start=_NU_SENTRAL,
        end=_MUZIUM_NEGARA_C,
        distance_m=240.0,
        duration_s=180.0,
        type="covered_walkway",
        features=("covered", "elevated walkway", "escalators", "wheelchair accessible"),
        instructions=(
            "Exit NU Sentral and follow the covered elevated walkway. "
            "The 240m walkway connects to Muzium Negara MRT Entrance C."
        ),
        is_bidirectional=True,
    ),
    IndoorConnection(
        id="kl-sentral-muzium-negara-via-nu",
        name="KL Sentral → Muzium Negara MRT (via NU Sentral)",
        start=_KL_SENTRAL_L2,
        end=_MUZIUM_NEGARA_C,
        distance_m=390.0,
        duration_s=300.0,
        type="mall",
        features=("air-conditioned", "covered", "escalators", "wheelchair accessible", "restrooms"),
        opening_hours="5:30am - 12:00am daily",
        instructions=(
            "From KL Sentral Level 2, walk through NU Sentral mall (air-conditioned), "
            "then follow covered elevated walkway to Muzium Negara MRT."
        ),
        is_bidirectional=True,
    ),
    IndoorConnection(
        id="pasar-seni-lrt-mrt",
        name="Pasar Seni LRT ↔ Pasar Seni MRT",
        start=IndoorPoint("Pasar Seni LRT Station", (101.69531, 3.14247)),
        end=IndoorPoint("Pasar Seni MRT Station", (101.6953, 3.1422)),
        distance_m=65.0,
        duration_s=60.0,
        type="skybridge",
        features=("covered", "paid-to-paid link", "escalators", "lifts"),
        instructions=(
            "Pedestrian bridge over Jalan Sultan Mohamed connects LRT Concourse Level "
            "to MRT Concourse Level. Paid area connection."
        ),
        is_bidirectional=True,
    ),
    IndoorConnection(
        id="pasar-seni-central-market",
        name="Pasar Seni Station ↔ Central Market",
        start=IndoorPoint("Pasar Seni LRT/MRT Entrance A", (101.6947, 3.1419)),
        end=IndoorPoint("Central Market Main Entrance", (101.6953, 3.1422)),
        distance_m=80.0,
        duration_s=90.0,
        type="covered_walkway",
        features=("covered", "heritage building", "shopping"),
        opening_hours="10:00am - 9:00pm daily",
        instructions=(
            "Exit Pasar Seni station Entrance A. Central Market is directly adjacent, "
            "a short covered walk to the heritage building entrance."
        ),
        is_bidirectional=True,
    ),
)

INDOOR_CATALOG = IndoorCatalog(KL_INDOOR_CONNECTIONS)
