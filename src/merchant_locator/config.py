"""Application configuration and settings management."""

from pathlib import Path
from typing import Annotated, Any, Optional

import json
import math
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class DeliveryZoneTierSetting(BaseModel):
    """One distance band of the delivery fee schedule as supplied in configuration."""

    maxDistanceMeters: float = Field(default=math.inf, gt=0)
    baseFee: float = Field(ge=0)
    perKmRate: float = Field(default=0.0, ge=0)

    @field_validator("maxDistanceMeters", mode="before")
    @classmethod
    def _unbounded_sentinel(cls, value: Any) -> Any:
        if value is None:
            return math.inf
        if isinstance(value, str) and value.strip().lower() in {"inf", "infinity", "unbounded", ""}:
            return math.inf
        return value


DEFAULT_DELIVERY_ZONE_TIERS = (
    DeliveryZoneTierSetting(maxDistanceMeters=3000, baseFee=49, perKmRate=0),
    DeliveryZoneTierSetting(maxDistanceMeters=6000, baseFee=49, perKmRate=10),
    DeliveryZoneTierSetting(maxDistanceMeters=math.inf, baseFee=69, perKmRate=12),
)


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Merchant Locator API"
    api_prefix: str = "/api"
    frontend_allowed_origins: Annotated[tuple[str, ...], NoDecode] = Field(
        default=("http://localhost:3000", "http://127.0.0.1:3000"),
        description="Permitted web origins for browser clients (CORS).",
    )

    earth_radius_meters: float = Field(default=6371000.0, gt=0)
    grid_cell_size_degrees: float = Field(
        default=0.01,
        gt=0,
        le=90,
        description="Edge length of a spatial prefilter cell in degrees.",
    )
    average_speed_meters_per_minute: float = Field(
        default=300.0,
        gt=0,
        description="Assumed courier speed for travel-time estimates (300 m/min ~ 18 km/h).",
    )
    peak_hour_windows: Annotated[tuple[str, ...], NoDecode] = Field(
        default=("11:00-13:00", "18:00-20:00"),
        description="Local time ranges (HH:MM-HH:MM) treated as peak hours.",
    )
    peak_fee_multiplier: float = Field(default=1.2, gt=0)
    extended_range_surcharge_multiplier: float = Field(default=1.5, gt=0)
    peak_eta_multiplier: float = Field(default=1.3, gt=0)
    delivery_zone_tiers: Annotated[tuple[DeliveryZoneTierSetting, ...], NoDecode] = Field(
        default=DEFAULT_DELIVERY_ZONE_TIERS
    )
    timezone: str = Field(default="UTC", description="IANA zone used to evaluate peak windows.")

    default_limit: int = Field(default=50, ge=1)
    max_limit: int = Field(default=200, ge=1)
    candidate_batch_size: int = Field(default=512, ge=1)
    query_timeout_seconds: float = Field(default=0.0, ge=0.0, description="0 disables the per-query deadline.")
    snapshot_refresh_seconds: float = Field(default=0.0, ge=0.0, description="0 disables background rebuilds.")

    default_delivery_radius_meters: float = Field(default=5000.0, gt=0)
    default_preparation_time_minutes: float = Field(default=30.0, ge=0)
    merchant_file: Path = Field(
        default=Path("data/merchants.csv"),
        description="Fallback merchant dataset (.csv or .xlsx) used when no database is configured.",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )
    supabase_merchants_table: str = "merchants"

    @field_validator("merchant_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", "peak_hour_windows", mode="before")
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

    @field_validator("delivery_zone_tiers", mode="before")
    @classmethod
    def _parse_tiers_from_env(cls, value: Any) -> Any:
        """Accept the tier schedule as a JSON array of objects."""
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValueError(f"DELIVERY_ZONE_TIERS is not valid JSON: {exc}") from exc
            if not isinstance(parsed, list):
                raise ValueError("DELIVERY_ZONE_TIERS must be a JSON array")
            return tuple(parsed)
        return value

    @field_validator("delivery_zone_tiers")
    @classmethod
    def _validate_tier_order(
        cls, value: tuple[DeliveryZoneTierSetting, ...]
    ) -> tuple[DeliveryZoneTierSetting, ...]:
        if not value:
            raise ValueError("At least one delivery zone tier is required")
        bounds = [tier.maxDistanceMeters for tier in value]
        if any(later <= earlier for earlier, later in zip(bounds, bounds[1:])):
            raise ValueError("Delivery zone tiers must be sorted by strictly ascending maxDistanceMeters")
        return value

    @model_validator(mode="after")
    def _check_limits(self) -> "Settings":
        if self.default_limit > self.max_limit:
            raise ValueError("default_limit cannot exceed max_limit")
        return self


settings = Settings()
