"""Application settings loaded from environment."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly typed settings for the dashboard core."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Data sources (thin server proxy)
    records_url: str = Field(default="http://localhost:8787/api/photos", alias="RECORDS_URL")
    missions_url: str = Field(default="http://localhost:8787/api/missions", alias="MISSIONS_URL")
    water_tests_url: str = Field(
        default="http://localhost:8787/api/water-tests", alias="WATER_TESTS_URL"
    )
    resolution_data_url: str = Field(
        default="http://localhost:8787/exports/location-resolutions.json",
        alias="RESOLUTION_DATA_URL",
    )
    resolution_data_file: Optional[Path] = Field(default=None, alias="RESOLUTION_DATA_FILE")

    # Dataset fetch
    fetch_timeout_seconds: float = Field(default=12.0, alias="FETCH_TIMEOUT_SECONDS")
    fetch_retry_timeout_seconds: float = Field(default=30.0, alias="FETCH_RETRY_TIMEOUT_SECONDS")
    fetch_max_attempts: int = Field(default=2, alias="FETCH_MAX_ATTEMPTS")
    fetch_retry_delay_seconds: float = Field(default=1.5, alias="FETCH_RETRY_DELAY_SECONDS")
    water_tests_timeout_seconds: float = Field(default=30.0, alias="WATER_TESTS_TIMEOUT_SECONDS")
    water_tests_limit: int = Field(default=500, alias="WATER_TESTS_LIMIT")

    # Reverse geocoding
    enable_live_reverse_geocoding: bool = Field(
        default=False, alias="ENABLE_LIVE_REVERSE_GEOCODING"
    )
    photon_url: str = Field(default="https://photon.komoot.io/reverse", alias="PHOTON_URL")
    nominatim_url: str = Field(
        default="https://nominatim.openstreetmap.org/reverse", alias="NOMINATIM_URL"
    )
    nominatim_zoom: int = Field(default=10, alias="NOMINATIM_ZOOM")
    geocode_timeout_seconds: float = Field(default=6.0, alias="GEOCODE_TIMEOUT_SECONDS")
    geocode_min_interval_seconds: float = Field(
        default=1.0, alias="GEOCODE_MIN_INTERVAL_SECONDS"
    )
    user_agent: str = Field(default="ppd-dashboard/0.1", alias="PPD_USER_AGENT")
    resolution_nearest_max_distance: float = Field(
        default=0.35, alias="RESOLUTION_NEAREST_MAX_DISTANCE"
    )

    # Location dictionary persistence
    location_cache_path: Path = Field(
        default=Path("data/location_cache.json"), alias="LOCATION_CACHE_PATH"
    )
    location_cache_key: str = Field(
        default="planetpatrol.locationDictionary.v2", alias="LOCATION_CACHE_KEY"
    )

    # Runtime
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    http_log_level: str = Field(default="WARNING", alias="HTTP_LOG_LEVEL")
    run_env: str = Field(default="local", alias="RUN_ENV")

    def fetch_timeout_for_attempt(self, attempt: int) -> float:
        """Return the timeout for a 1-based fetch attempt (later attempts escalate)."""
        if attempt <= 1:
            return self.fetch_timeout_seconds
        return max(self.fetch_timeout_seconds, self.fetch_retry_timeout_seconds)
