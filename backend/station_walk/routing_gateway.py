# backend/station_walk/routing_gateway.py
from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, Final, Literal

import httpx

from .geo import LonLat

GatewayErrorKind = Literal["network", "http", "response"]

# Failures that mean the provider itself is unreachable or unhealthy.
OUTAGE_KINDS: Final[frozenset[str]] = frozenset({"network", "http"})

_CROSSING_RE: Final[re.Pattern[str]] = re.compile(r"cross", re.IGNORECASE)


class GatewayError(RuntimeError):
    def __init__(self, message: str, *, kind: GatewayErrorKind = "response") -> None:
        super().__init__(message)
        self.kind: GatewayErrorKind = kind

    @property
    def is_outage(self) -> bool:
        return self.kind in OUTAGE_KINDS


class GatewayConfigError(GatewayError):
    """The provider cannot be called at all (e.g. missing access token)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, kind="response")


class RequestCancelled(Exception):
    """The caller withdrew the request; not a failure."""


class CancelToken:
    """Cooperative cancellation handle shared by every request of one resolution."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelled("request cancelled")


@dataclass(frozen=True)
class WalkingStep:
    instruction: str
    distance_m: float
    duration_s: float
    street_name: str = ""
    is_crossing: bool = False


@dataclass(frozen=True)
class WalkingDirections:
    distance_m: float
    duration_s: float
    geometry: list[LonLat]
    steps: list[WalkingStep] = field(default_factory=list)


@dataclass(frozen=True)
class WalkingMatrix:
    distances_m: list[float | None]
    durations_s: list[float | None]


def is_crossing_instruction(instruction: str) -> bool:
    # Keyword heuristic only; the provider does not flag crosswalks.
    return bool(_CROSSING_RE.search(instruction or ""))


def _format_coords(points: list[LonLat]) -> str:
    return ";".join(f"{lon},{lat}" for (lon, lat) in points)


def _format_provider_error(resp: httpx.Response) -> str:
    """Best-effort decode of provider JSON error payloads."""
    try:
        data = resp.json()
        if isinstance(data, dict):
            code = data.get("code")
            message = data.get("message")
            if code and message:
                return f"Directions {resp.status_code} {code}: {message}"
            if code:
                return f"Directions {resp.status_code} {code}"
            if message:
                return f"Directions {resp.status_code}: {message}"
    except ValueError:
        # fall through to text
        pass

    body = (resp.text or "").strip().replace("\n", " ")
    if len(body) > 240:
        body = body[:240] + "..."
    if body:
        return f"Directions {resp.status_code}: {body}"
    return f"Directions HTTP {resp.status_code}"


def _as_optional_float(value: Any) -> float | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def _parse_geometry(route: dict[str, Any]) -> list[LonLat]:
    geom = route.get("geometry")
    if not isinstance(geom, dict):
        return []
    out: list[LonLat] = []
    for pt in geom.get("coordinates") or []:
        if (
            isinstance(pt, (list, tuple))
            and len(pt) >= 2
            and isinstance(pt[0], (int, float))
            and isinstance(pt[1], (int, float))
        ):
            out.append((float(pt[0]), float(pt[1])))
    return out


def _parse_steps(route: dict[str, Any]) -> list[WalkingStep]:
    steps: list[WalkingStep] = []
    for leg in route.get("legs") or []:
        for raw in (leg or {}).get("steps") or []:
            maneuver = (raw or {}).get("maneuver") or {}
            instruction = str(maneuver.get("instruction") or "")
            steps.append(
                WalkingStep(
                    instruction=instruction,
                    distance_m=float(raw.get("distance") or 0.0),
                    duration_s=float(raw.get("duration") or 0.0),
                    street_name=str(raw.get("name") or ""),
                    is_crossing=is_crossing_instruction(instruction),
                )
            )
    return steps


class DirectionsGateway:
    """Walking directions and one-to-many matrix against a Mapbox-compatible provider."""

    def __init__(
        self,
        *,
        access_token: str,
        base_url: str = "https://api.mapbox.com",
        profile: str = "mapbox/walking",
        timeout_s: float = 10.0,
        connect_timeout_s: float = 5.0,
        max_concurrency: int = 8,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        token = (access_token or "").strip()
        if not token:
            raise GatewayConfigError(
                "Routing provider access token is not configured; set MAPBOX_ACCESS_TOKEN."
            )
        self._token = token
        self.base_url = base_url.rstrip("/")
        self.profile = profile.strip("/")
        self._sem = asyncio.Semaphore(max(1, int(max_concurrency)))
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s, connect=connect_timeout_s),
            headers={"accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(
        self,
        url: str,
        params: dict[str, str],
        cancel: CancelToken | None,
    ) -> dict[str, Any]:
        if cancel is not None:
            cancel.raise_if_cancelled()

        query = {**params, "access_token": self._token}
        async with self._sem:
            if cancel is not None:
                cancel.raise_if_cancelled()
            request = asyncio.ensure_future(self._client.get(url, params=query))
            waiter = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
            try:
                if waiter is None:
                    await asyncio.wait({request})
                else:
                    await asyncio.wait({request, waiter}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                if waiter is not None and not waiter.done():
                    waiter.cancel()
                if not request.done():
                    # Aborts the underlying HTTP exchange.
                    request.cancel()
                    await asyncio.gather(request, return_exceptions=True)

            if request.cancelled():
                raise RequestCancelled("request cancelled")

            try:
                resp = request.result()
            except httpx.HTTPError as e:
                # httpx exceptions can stringify to "" (e.g. some timeouts), so include the type.
                msg = str(e).strip() or repr(e)
                raise GatewayError(
                    f"Directions request failed (base={self.base_url}): {type(e).__name__}: {msg}",
                    kind="network",
                ) from e

        if resp.status_code >= 400:
            raise GatewayError(_format_provider_error(resp), kind="http")

        try:
            data = resp.json()
        except ValueError as e:
            raise GatewayError("Directions response is not valid JSON", kind="response") from e

        if not isinstance(data, dict):
            raise GatewayError("Directions response is not an object", kind="response")
        if data.get("code") != "Ok":
            raise GatewayError(
                f"Directions error code={data.get('code')} message={data.get('message')}",
                kind="response",
            )
        return data

    async def matrix(
        self,
        origin: LonLat,
        destinations: list[LonLat],
        *,
        cancel: CancelToken | None = None,
    ) -> WalkingMatrix:
        """Distance/duration from one origin to many destinations in one request."""
        if not destinations:
            return WalkingMatrix(distances_m=[], durations_s=[])

        coords = _format_coords([origin, *destinations])
        url = f"{self.base_url}/directions-matrix/v1/{self.profile}/{coords}"
        params = {
            "sources": "0",
            "destinations": ";".join(str(i) for i in range(1, len(destinations) + 1)),
            "annotations": "distance,duration",
        }
        data = await self._get_json(url, params, cancel)

        durations = data.get("durations")
        distances = data.get("distances")
        if not isinstance(durations, list) or not durations or not isinstance(durations[0], list):
            raise GatewayError("Matrix response missing durations", kind="response")
        if not isinstance(distances, list) or not distances or not isinstance(distances[0], list):
            raise GatewayError("Matrix response missing distances", kind="response")

        row_t = durations[0]
        row_d = distances[0]
        n = len(destinations)
        return WalkingMatrix(
            distances_m=[_as_optional_float(row_d[i]) if i < len(row_d) else None for i in range(n)],
            durations_s=[_as_optional_float(row_t[i]) if i < len(row_t) else None for i in range(n)],
        )

    async def directions(
        self,
        start: LonLat,
        end: LonLat,
        *,
        cancel: CancelToken | None = None,
    ) -> WalkingDirections:
        """Turn-by-turn walking route between two points."""
        url = f"{self.base_url}/directions/v5/{self.profile}/{_format_coords([start, end])}"
        params = {
            "geometries": "geojson",
            "overview": "full",
            "steps": "true",
        }
        data = await self._get_json(url, params, cancel)

        routes = data.get("routes", [])
        if not isinstance(routes, list) or not routes or not isinstance(routes[0], dict):
            raise GatewayError("Directions returned no routes", kind="response")

        route = routes[0]
        return WalkingDirections(
            distance_m=float(route.get("distance") or 0.0),
            duration_s=float(route.get("duration") or 0.0),
            geometry=_parse_geometry(route),
            steps=_parse_steps(route),
        )
