from __future__ import annotations

from station_walk.indoor_connections import (
    INDOOR_CATALOG,
    IndoorCatalog,
    IndoorConnection,
    IndoorPoint,
    indoor_percentage,
)

KL_SENTRAL_L2 = (101.6860, 3.1340)
MUZIUM_NEGARA_C = (101.6878, 3.1375)


def _conn(*, bidirectional: bool = True, distance_m: float = 100.0) -> IndoorConnection:
    return IndoorConnection(
        id="test-link",
        name="North Hall ↔ South Hall",
        start=IndoorPoint("North Hall", (0.0, 0.0)),
        end=IndoorPoint("South Hall", (0.0, 0.001)),
        distance_m=distance_m,
        duration_s=90.0,
        type="underground",
        features=("air-conditioned",),
        instructions="Take the underpass.",
        is_bidirectional=bidirectional,
    )


def test_catalog_contents() -> None:
    ids = [c.id for c in INDOOR_CATALOG.connections()]
    assert ids == [
        "kl-sentral-nu-sentral",
        "nu-sentral-muzium-negara",
        "kl-sentral-muzium-negara-via-nu",
        "pasar-seni-lrt-mrt",
        "pasar-seni-central-market",
    ]
    assert len(INDOOR_CATALOG) == 5


def test_reversed_view_swaps_endpoints_and_name() -> None:
    conn = _conn()
    rev = conn.reversed()
    assert rev.id == "test-link-reverse"
    assert rev.name == "South Hall ↔ North Hall"
    assert rev.start == conn.end and rev.end == conn.start
    assert rev.duration_s == conn.duration_s
    # The authored entry is untouched.
    assert conn.start.name == "North Hall"


def test_directed_views_respect_bidirectionality() -> None:
    assert [c.id for c in _conn().directed_views()] == ["test-link", "test-link-reverse"]
    assert [c.id for c in _conn(bidirectional=False).directed_views()] == ["test-link"]


def test_find_usable_returns_catalog_order_not_shortest() -> None:
    usable = INDOOR_CATALOG.find_usable(KL_SENTRAL_L2, MUZIUM_NEGARA_C)
    assert [c.id for c in usable] == [
        "nu-sentral-muzium-negara",
        "kl-sentral-muzium-negara-via-nu",
    ]


def test_find_usable_honours_detour_tolerance() -> None:
    usable = INDOOR_CATALOG.find_usable(KL_SENTRAL_L2, MUZIUM_NEGARA_C, max_detour_m=50.0)
    assert [c.id for c in usable] == ["kl-sentral-muzium-negara-via-nu"]


def test_find_usable_includes_reverse_views_after_forward() -> None:
    usable = INDOOR_CATALOG.find_usable((101.69531, 3.14247), (101.6953, 3.1422))
    assert [c.id for c in usable] == [
        "pasar-seni-lrt-mrt",
        "pasar-seni-lrt-mrt-reverse",
        "pasar-seni-central-market",
        "pasar-seni-central-market-reverse",
    ]


def test_find_usable_nothing_nearby() -> None:
    assert INDOOR_CATALOG.find_usable((0.0, 0.0), (0.0, 0.001)) == []
    assert IndoorCatalog([]).find_usable(KL_SENTRAL_L2, MUZIUM_NEGARA_C) == []


def test_indoor_percentage() -> None:
    conn = _conn(distance_m=100.0)
    # Approach and egress legs are each ~111 m.
    assert indoor_percentage(conn, (0.0, -0.001), (0.0, 0.002)) == 31
    assert indoor_percentage(conn, conn.start.coordinates, conn.end.coordinates) == 100
    assert indoor_percentage(_conn(distance_m=0.0), (0.0, 0.0), (0.0, 0.001)) == 100
