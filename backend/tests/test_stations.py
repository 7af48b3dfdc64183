from __future__ import annotations

import pytest

from station_walk.geo import haversine_m
from station_walk.stations import (
    KL_STATIONS,
    STATION_DIRECTORY,
    StationDirectory,
    _station,
    match_by_name,
)

from conftest import A1, A2, DESTINATION


def test_kl_directory_has_unique_named_stations_with_exits() -> None:
    names = [st.name for st in STATION_DIRECTORY.stations()]
    assert len(names) == len(KL_STATIONS) == 12
    assert names[0] == "KL Sentral"
    assert len({n.casefold() for n in names}) == len(names)
    for st in STATION_DIRECTORY.stations():
        assert st.exits
        assert all(ex.station_name == st.name for ex in st.exits)


def test_duplicate_station_names_are_rejected() -> None:
    one = _station("Alpha", "LRT", ["L1"], [("A", (101.7, 3.15), None)])
    two = _station("alpha", "MRT", ["L2"], [("B", (101.71, 3.15), None)])
    with pytest.raises(ValueError, match="duplicate"):
        StationDirectory([one, two])


def test_station_requires_an_exit() -> None:
    with pytest.raises(ValueError):
        _station("Empty", "LRT", [], [])


def test_nearest_exit_picks_closest(directory: StationDirectory) -> None:
    alpha = directory.lookup("Alpha")
    assert alpha is not None
    ex, d = alpha.nearest_exit(DESTINATION)
    assert ex.name == "A1"
    assert d == pytest.approx(haversine_m(DESTINATION, A1))
    ex2, _ = alpha.nearest_exit(A2)
    assert ex2.name == "A2"


def test_find_near_uses_nearest_exit_within_radius(directory: StationDirectory) -> None:
    names = [st.name for st in directory.find_near(DESTINATION, 1500.0)]
    assert names == ["Alpha", "Beta", "Gamma"]

    for st in directory.find_near(DESTINATION, 600.0):
        _ex, d = st.nearest_exit(DESTINATION)
        assert d <= 600.0
    assert [st.name for st in directory.find_near(DESTINATION, 600.0)] == ["Alpha", "Beta"]


def test_find_near_nothing_in_range() -> None:
    assert STATION_DIRECTORY.find_near((0.0, 0.0), 1500.0) == []


def test_find_nearest_n(directory: StationDirectory) -> None:
    assert [st.name for st in directory.find_nearest_n(DESTINATION, 2)] == ["Alpha", "Beta"]
    assert len(directory.find_nearest_n(DESTINATION, 10)) == 4
    assert directory.find_nearest_n(DESTINATION, 0) == []


def test_kl_nearest_station_to_muzium_negara_entrance() -> None:
    nearest = STATION_DIRECTORY.find_nearest_n((101.6878, 3.1375), 1)
    assert [st.name for st in nearest] == ["Muzium Negara MRT"]


def test_lookup_prefers_exact_then_casefold_then_substring() -> None:
    klcc = STATION_DIRECTORY.lookup("KLCC")
    assert klcc is not None and klcc.name == "KLCC"

    lower = STATION_DIRECTORY.lookup("klcc")
    assert lower is not None and lower.name == "KLCC"

    partial = STATION_DIRECTORY.lookup("bukit bintang")
    assert partial is not None
    assert partial.name in {"Bukit Bintang MRT", "Bukit Bintang Monorail"}
    # First in directory order wins when a substring is ambiguous.
    assert partial.name == "Bukit Bintang Monorail"


def test_lookup_query_containing_station_name() -> None:
    st = STATION_DIRECTORY.lookup("Pasar Seni station")
    assert st is not None and st.name == "Pasar Seni"


def test_lookup_misses() -> None:
    assert STATION_DIRECTORY.lookup("") is None
    assert STATION_DIRECTORY.lookup("   ") is None
    assert STATION_DIRECTORY.lookup("Nowhere Junction") is None


def test_match_by_name_is_generic() -> None:
    items = [{"n": "Alpha One"}, {"n": "alpha"}]
    assert match_by_name("alpha", items, lambda it: it["n"]) == {"n": "alpha"}
    assert match_by_name("ONE", items, lambda it: it["n"]) == {"n": "Alpha One"}
