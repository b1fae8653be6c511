"""Application configuration and settings management."""

from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="TOURNEE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Tournee Optimization API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root logging level.")
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Carrier (Colis Prive) endpoints
    carrier_auth_url: Optional[str] = Field(
        default=None,
        description="Base URL of the carrier authentication service.",
    )
    carrier_tournee_url: Optional[str] = Field(
        default=None,
        description="Base URL of the carrier tour (manifest) service.",
    )
    carrier_detail_url: Optional[str] = Field(
        default=None,
        description="Base URL of the carrier package detail service.",
    )
    carrier_token_lifetime_hours: int = Field(default=24, ge=1)
    carrier_timeout_seconds: float = Field(default=30.0, gt=0.0)

    detail_batch_size: int = Field(default=5, ge=1)
    detail_batch_delay_seconds: float = Field(default=0.5, ge=0.0)
    detail_cache_ttl_seconds: float = Field(default=3600.0, gt=0.0)
    detail_cache_max_entries: int = Field(default=1000, ge=1)

    # Route optimization
    optimization_provider: Literal["auto", "mapbox", "local"] = Field(
        default="auto",
        description="'auto' uses Mapbox when a token is configured, the local solver otherwise.",
    )
    mapbox_token: Optional[str] = Field(default=None, description="Mapbox access token.")
    mapbox_base_url: str = "https://api.mapbox.com"
    optimization_service_duration_seconds: int = Field(default=300, ge=0)
    optimization_poll_interval_seconds: float = Field(default=5.0, gt=0.0)
    optimization_max_wait_seconds: float = Field(default=300.0, gt=0.0)
    depot_latitude: float = Field(default=48.8566, ge=-90.0, le=90.0)
    depot_longitude: float = Field(default=2.3522, ge=-180.0, le=180.0)
    solver_time_limit_seconds: int = Field(default=5, ge=1)
    local_average_speed_kmh: float = Field(default=30.0, gt=0.0)

    # Pipeline
    enrichment_timeout_seconds: float = Field(default=60.0, gt=0.0)
    pipeline_deadline_seconds: float = Field(default=600.0, gt=0.0)

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    @field_validator("carrier_auth_url", "carrier_tournee_url", "carrier_detail_url", "mapbox_base_url", mode="after")
    @classmethod
    def _strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.rstrip("/")

    @property
    def use_mapbox(self) -> bool:
        if self.optimization_provider == "mapbox":
            return True
        if self.optimization_provider == "local":
            return False
        return bool(self.mapbox_token)


settings = Settings()
