from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping config out of code for easy extension."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    mapbox_access_token: str = Field(default="", alias="MAPBOX_ACCESS_TOKEN")
    directions_base_url: str = Field(default="https://api.mapbox.com", alias="DIRECTIONS_BASE_URL")
    walking_profile: str = Field(default="mapbox/walking", alias="WALKING_PROFILE")

    gateway_timeout_s: float = Field(default=10.0, ge=1.0, le=120.0, alias="GATEWAY_TIMEOUT_S")
    gateway_connect_timeout_s: float = Field(
        default=5.0,
        ge=0.5,
        le=60.0,
        alias="GATEWAY_CONNECT_TIMEOUT_S",
    )
    # Cap on simultaneous provider requests issued by one resolution.
    gateway_concurrency: int = Field(default=8, ge=1, le=64, alias="GATEWAY_CONCURRENCY")
    use_matrix: bool = Field(default=True, alias="USE_MATRIX")

    station_search_radius_m: float = Field(default=1500.0, gt=0.0, alias="STATION_SEARCH_RADIUS_M")
    max_walk_duration_s: float = Field(default=900.0, gt=0.0, alias="MAX_WALK_DURATION_S")
    indoor_max_detour_m: float = Field(default=150.0, ge=0.0, alias="INDOOR_MAX_DETOUR_M")
    # Placeholder comfort bias for indoor walkways, not a measured speed-up.
    indoor_score_factor: float = Field(default=0.7, gt=0.0, le=1.0, alias="INDOOR_SCORE_FACTOR")

    out_dir: str = Field(default="out", alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_name: str = Field(default="station_walk", alias="LOG_NAME")
    # File under OUT_DIR/logs; empty keeps logging on the stream only.
    log_file: str = Field(default="walking_routes.log.jsonl", alias="LOG_FILE")

    @model_validator(mode="after")
    def _normalise(self) -> "Settings":
        self.mapbox_access_token = self.mapbox_access_token.strip()
        self.directions_base_url = self.directions_base_url.strip().rstrip("/")
        self.walking_profile = self.walking_profile.strip().strip("/") or "mapbox/walking"
        self.log_name = self.log_name.strip() or "station_walk"
        self.log_file = self.log_file.strip()
        return self


settings = Settings()
