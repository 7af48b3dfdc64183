from __future__ import annotations

import asyncio
from typing import Any

import pytest

from station_walk.geo import LonLat
from station_walk.indoor_connections import IndoorCatalog
from station_walk.resolver import WalkingRouteResolver
from station_walk.routing_gateway import (
    CancelToken,
    GatewayError,
    WalkingDirections,
    WalkingMatrix,
    WalkingStep,
)
from station_walk.stations import StationDirectory, _station

DESTINATION: LonLat = (101.7000, 3.1500)

A1: LonLat = (101.7010, 3.1500)  # ~111 m east
A2: LonLat = (101.7000, 3.1520)  # ~222 m north
B1: LonLat = (101.7050, 3.1500)  # ~555 m east
G1: LonLat = (101.7000, 3.1560)  # ~667 m north
F1: LonLat = (101.7300, 3.1500)  # ~3.3 km east


class FakeGateway:
    """In-process stand-in for the directions provider."""

    def __init__(
        self,
        durations: dict[LonLat, float] | None = None,
        *,
        matrix_durations: dict[LonLat, float] | None = None,
        fail: dict[LonLat, str] | None = None,
        matrix_error: str | None = None,
        block_destination: LonLat | None = None,
    ) -> None:
        self.durations = dict(durations or {})
        self.matrix_durations = dict(matrix_durations or {})
        self.fail = dict(fail or {})
        self.matrix_error = matrix_error
        self.block_destination = block_destination
        self.gate = asyncio.Event()
        self.calls: list[dict[str, Any]] = []

    async def _block(self, cancel: CancelToken | None) -> None:
        waiters = [asyncio.ensure_future(self.gate.wait())]
        if cancel is not None:
            waiters.append(asyncio.ensure_future(cancel.wait()))
        _done, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        for p in pending:
            p.cancel()
        if cancel is not None:
            cancel.raise_if_cancelled()

    async def matrix(
        self,
        origin: LonLat,
        destinations: list[LonLat],
        *,
        cancel: CancelToken | None = None,
    ) -> WalkingMatrix:
        self.calls.append({"op": "matrix", "origin": origin, "destinations": list(destinations)})
        if self.matrix_error is not None:
            raise GatewayError("matrix down", kind=self.matrix_error)  # type: ignore[arg-type]
        durations = [self.matrix_durations.get(d) for d in destinations]
        distances = [None if t is None else t * 1.25 for t in durations]
        return WalkingMatrix(distances_m=distances, durations_s=durations)

    async def directions(
        self,
        start: LonLat,
        end: LonLat,
        *,
        cancel: CancelToken | None = None,
    ) -> WalkingDirections:
        self.calls.append({"op": "directions", "start": start, "end": end})
        if self.block_destination is not None and end == self.block_destination:
            await self._block(cancel)
        if start in self.fail:
            raise GatewayError(f"pair failed at {start}", kind=self.fail[start])  # type: ignore[arg-type]
        duration = self.durations.get(start, 480.0)
        return WalkingDirections(
            distance_m=duration * 1.3,
            duration_s=duration,
            geometry=[start, ((start[0] + end[0]) / 2, (start[1] + end[1]) / 2), end],
            steps=[
                WalkingStep("Head north on Jalan Sultan Ismail", duration * 0.8, duration * 0.6, "Jalan Sultan Ismail"),
                WalkingStep("Cross Jalan Ampang", duration * 0.5, duration * 0.4, "Jalan Ampang", True),
            ],
        )

    def count(self, op: str) -> int:
        return sum(1 for c in self.calls if c["op"] == op)


@pytest.fixture
def directory() -> StationDirectory:
    return StationDirectory(
        [
            _station("Alpha", "LRT", ["LRT Kelana Jaya Line"], [("A1", A1, None), ("A2", A2, "North side")]),
            _station("Beta", "MRT", ["MRT Kajang Line"], [("B1", B1, None)]),
            _station("Gamma", "Monorail", ["KL Monorail"], [("G1", G1, None)]),
            _station("Far", "KTM", ["KTM Komuter"], [("F1", F1, None)]),
        ]
    )


@pytest.fixture
def empty_catalog() -> IndoorCatalog:
    return IndoorCatalog([])


@pytest.fixture
def make_resolver(directory: StationDirectory, empty_catalog: IndoorCatalog):
    def _make(
        gateway: FakeGateway,
        *,
        catalog: IndoorCatalog | None = None,
        directory_override: StationDirectory | None = None,
        **kwargs: Any,
    ) -> WalkingRouteResolver:
        opts: dict[str, Any] = {
            "search_radius_m": 1500.0,
            "max_walk_duration_s": 900.0,
            "indoor_max_detour_m": 150.0,
            "indoor_score_factor": 0.7,
            "use_matrix": True,
        }
        opts.update(kwargs)
        return WalkingRouteResolver(
            directory=directory if directory_override is None else directory_override,
            catalog=catalog if catalog is not None else empty_catalog,
            gateway=gateway,
            **opts,
        )

    return _make
