from __future__ import annotations

import argparse
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Sequence

import httpx


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Resolve walking routes from nearby stations to a destination on a running backend."
    )
    parser.add_argument("--lat", type=float, required=True)
    parser.add_argument("--lon", type=float, required=True)
    parser.add_argument("--backend-url", default="http://localhost:8000")
    parser.add_argument("--switch-to", default=None, help="Route id or station name to make active")
    parser.add_argument("--save-map", default=None, help="Write the GeoJSON map state to this path")
    parser.add_argument("--summary-path", default=None)
    return parser


def _route_id_for(client: httpx.Client, base: str, routes: list[dict[str, Any]], wanted: str) -> str:
    if any(route.get("route_id") == wanted for route in routes):
        return wanted
    # Station names go through the backend so matching stays the same everywhere.
    resp = client.get(f"{base}/walking-routes/station", params={"name": wanted})
    if resp.status_code == 404:
        raise ValueError(f"no resolved route matches {wanted!r}")
    resp.raise_for_status()
    return str(resp.json()["route_id"])


def execute_resolution(
    *,
    lat: float,
    lon: float,
    backend_url: str,
    switch_to: str | None = None,
    save_map: str | None = None,
    summary_path: str | None = None,
    client: httpx.Client | None = None,
) -> dict[str, Any]:
    base = backend_url.rstrip("/")
    own_client = client is None
    if client is None:
        client = httpx.Client(timeout=60.0)

    try:
        resp = client.post(f"{base}/walking-routes", json={"destination": {"lat": lat, "lon": lon}})
        resp.raise_for_status()
        data = resp.json()

        if switch_to:
            route_id = _route_id_for(client, base, data.get("routes", []), switch_to)
            switch_resp = client.post(f"{base}/walking-routes/active", json={"route_id": route_id})
            switch_resp.raise_for_status()
            data = switch_resp.json()

        summary: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "destination": {"lat": lat, "lon": lon},
            "status": data.get("status"),
            "active_route_id": data.get("active_route_id"),
            "route_count": len(data.get("routes", [])),
            "routes": [
                {
                    "route_id": r["route_id"],
                    "station_name": r["station_name"],
                    "exit_name": r["exit_name"],
                    "formatted_duration": r["formatted_duration"],
                    "formatted_distance": r["formatted_distance"],
                    "has_indoor_route": r.get("has_indoor_route", False),
                }
                for r in data.get("routes", [])
            ],
        }

        if save_map:
            map_resp = client.get(f"{base}/walking-routes/map")
            map_resp.raise_for_status()
            map_file = Path(save_map)
            map_file.parent.mkdir(parents=True, exist_ok=True)
            map_file.write_text(json.dumps(map_resp.json(), indent=2), encoding="utf-8")
            summary["map_file"] = str(map_file)

        if summary_path:
            summary_file = Path(summary_path)
            summary_file.parent.mkdir(parents=True, exist_ok=True)
            summary_file.write_text(json.dumps(summary, indent=2), encoding="utf-8")
            summary["summary_file"] = str(summary_file)
        return summary
    finally:
        if own_client and client is not None:
            client.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    summary = execute_resolution(
        lat=args.lat,
        lon=args.lon,
        backend_url=args.backend_url,
        switch_to=args.switch_to,
        save_map=args.save_map,
        summary_path=args.summary_path,
    )
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
