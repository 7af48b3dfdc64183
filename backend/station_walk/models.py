from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from .geo import LonLat

SessionStatusName = Literal["idle", "resolving", "resolved", "switching", "failed"]


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)

    def as_lonlat(self) -> LonLat:
        return (self.lon, self.lat)

    @classmethod
    def from_lonlat(cls, point: LonLat) -> LatLng:
        return cls(lat=point[1], lon=point[0])


class GeoJSONLineString(BaseModel):
    type: Literal["LineString"] = "LineString"
    coordinates: list[tuple[float, float]]  # [lon, lat]


class RouteStep(BaseModel):
    instruction: str
    distance_m: float = Field(..., ge=0)
    duration_s: float = Field(..., ge=0)
    street_name: str = ""
    is_crossing: bool = False


class WalkingRoute(BaseModel):
    """Best exit of one station, walked to the destination."""

    route_id: str
    station_name: str
    station_mode: str
    lines: list[str]
    exit_name: str
    exit_description: str | None = None
    coordinates: tuple[float, float]  # exit [lon, lat]

    distance_m: float = Field(..., ge=0)
    duration_s: float = Field(..., ge=0)
    formatted_distance: str
    formatted_duration: str

    geometry: GeoJSONLineString | None = None
    steps: list[RouteStep] = Field(default_factory=list)
    color: str

    has_indoor_route: bool = False
    indoor_percentage: int = Field(default=0, ge=0, le=100)
    indoor_features: list[str] = Field(default_factory=list)
    indoor_connection_id: str | None = None
    indoor_connection_name: str | None = None


class ResolveRequest(BaseModel):
    destination: LatLng


class SwitchActiveRequest(BaseModel):
    route_id: str = Field(..., min_length=1)


class WalkingRoutesResponse(BaseModel):
    status: SessionStatusName
    destination: LatLng | None = None
    active_route_id: str | None = None
    routes: list[WalkingRoute] = Field(default_factory=list)
    error: str | None = None


class StationExitOut(BaseModel):
    name: str
    coordinates: tuple[float, float]
    description: str | None = None


class StationOut(BaseModel):
    name: str
    mode: str
    lines: list[str]
    exits: list[StationExitOut]
    nearest_exit: str | None = None
    nearest_exit_distance_m: float | None = None


class StationListResponse(BaseModel):
    stations: list[StationOut]


class IndoorConnectionOut(BaseModel):
    id: str
    name: str
    start_name: str
    start: tuple[float, float]
    end_name: str
    end: tuple[float, float]
    distance_m: float
    duration_s: float
    type: str
    features: list[str]
    instructions: str
    is_bidirectional: bool
    opening_hours: str | None = None


class IndoorConnectionListResponse(BaseModel):
    connections: list[IndoorConnectionOut]
