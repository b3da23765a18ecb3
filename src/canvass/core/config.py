"""Application configuration loaded from CANVASS_* environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class ApiConfig(BaseSettings):
    """Zone backend API configuration."""

    model_config = {"env_prefix": "CANVASS_API_"}

    base_url: str = "http://localhost:4000/api"
    auth_token: str | None = None
    timeout_seconds: float = 10.0
    max_retries: int = 1


class DetectionConfig(BaseSettings):
    """Building detection configuration."""

    model_config = {"env_prefix": "CANVASS_DETECTION_"}

    provider: str = "mock"
    overpass_url: str = "https://overpass-api.de/api/interpreter"
    geocode_url: str = "https://maps.googleapis.com/maps/api/geocode/json"
    google_api_key: str | None = None
    timeout_seconds: float = 30.0
    max_retries: int = 2
    min_buildings: int = 3
    max_buildings: int = 50
    square_meters_per_building: float = 400.0


class DraftConfig(BaseSettings):
    """Draft workflow configuration."""

    model_config = {"env_prefix": "CANVASS_DRAFT_"}

    tolerance: float = 1e-6
    validation_timeout_seconds: float = 45.0
    save_timeout_seconds: float = 20.0


class Settings(BaseSettings):
    """Root application settings."""

    model_config = {"env_prefix": "CANVASS_"}

    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    api: ApiConfig = Field(default_factory=ApiConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    draft: DraftConfig = Field(default_factory=DraftConfig)
