"""Configuration models for boundary delivery.

``BoundaryConfig`` holds behaviour (zoom bands, retry, cache, styles) and is
usually loaded from YAML via ``load_config``. ``BoundarySettings`` holds
deployment settings (backend URL and key, logging) read from ``BOUNDARY_*``
environment variables or a ``.env`` file.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from boundaries.lib.constants import (
    COUNTRY_MAX_ZOOM,
    COUNTRY_MIN_ZOOM,
    DEFAULT_BASE_DELAY,
    DEFAULT_CACHE_MAX_AGE,
    DEFAULT_DEBOUNCE_DELAY,
    DEFAULT_JITTER,
    DEFAULT_KEY_PRECISION,
    DEFAULT_MAX_CACHE_ENTRIES,
    DEFAULT_MAX_DELAY,
    DEFAULT_MAX_PENDING,
    DEFAULT_MAX_RETRIES,
    LOCATION_ZOOM_THRESHOLD,
    MAX_ZOOM,
    MIN_ZOOM,
    STATE_MAX_ZOOM,
    STATE_MIN_ZOOM,
)
from boundaries.lib.models import RegionKind
from boundaries.lib.resilience import RetryOptions
from boundaries.lib.styles import LayerStyle

logger = logging.getLogger(__name__)

__all__ = [
    "BoundaryConfig",
    "BoundarySettings",
    "CacheSettings",
    "RetrySettings",
    "SelectionPolicy",
    "StyleSettings",
    "ZoomBand",
]


class ZoomBand(BaseModel):
    """Zoom range in which a layer is shown."""

    min_zoom: float = Field(default=COUNTRY_MIN_ZOOM, ge=MIN_ZOOM, le=MAX_ZOOM)
    max_zoom: float = Field(default=COUNTRY_MAX_ZOOM, ge=MIN_ZOOM, le=MAX_ZOOM)
    enabled: bool = Field(default=True, description="Layer can be shown at all")

    @model_validator(mode="after")
    def validate_range(self) -> "ZoomBand":
        """Validate min_zoom does not exceed max_zoom."""
        if self.min_zoom > self.max_zoom:
            raise ValueError(f"min_zoom ({self.min_zoom}) must not exceed max_zoom ({self.max_zoom})")
        return self

    def contains(self, zoom: float) -> bool:
        return self.enabled and self.min_zoom <= zoom <= self.max_zoom


class RetrySettings(BaseModel):
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0, le=10, description="Retries after the first attempt")
    base_delay: float = Field(default=DEFAULT_BASE_DELAY, ge=0, description="Initial backoff in seconds")
    max_delay: float = Field(default=DEFAULT_MAX_DELAY, ge=0, description="Backoff ceiling in seconds")
    jitter: float = Field(default=DEFAULT_JITTER, ge=0, le=1, description="Jitter as a fraction of the delay")

    @model_validator(mode="after")
    def validate_delays(self) -> "RetrySettings":
        """Validate base_delay does not exceed max_delay."""
        if self.base_delay > self.max_delay:
            raise ValueError("base_delay must not exceed max_delay")
        return self

    def to_options(self) -> RetryOptions:
        return RetryOptions(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            jitter=self.jitter,
        )


class CacheSettings(BaseModel):
    max_age: float = Field(default=DEFAULT_CACHE_MAX_AGE, gt=0, description="Cache TTL in seconds")
    max_pending: int = Field(default=DEFAULT_MAX_PENDING, ge=1, description="Tracked in-flight/debounced requests")
    max_entries: int = Field(default=DEFAULT_MAX_CACHE_ENTRIES, ge=1, description="Cached results kept")
    debounce_delay: float = Field(default=DEFAULT_DEBOUNCE_DELAY, ge=0, description="Default debounce window in seconds")
    viewport_debounce: float = Field(default=0.0, ge=0, description="Debounce for viewport loads; 0 disables")
    key_precision: int = Field(default=DEFAULT_KEY_PRECISION, ge=0, le=10, description="Decimals kept in cache keys")


class StyleSettings(BaseModel):
    country: LayerStyle = Field(default_factory=LayerStyle)
    state: LayerStyle = Field(default_factory=LayerStyle)

    def for_kind(self, kind: RegionKind) -> LayerStyle:
        return self.country if kind is RegionKind.COUNTRY else self.state


class SelectionPolicy(BaseModel):
    """Cascade rules for marked locations."""

    cascade_location_to_state: bool = Field(
        default=True,
        description="Removing the last location in a state also deselects the state",
    )


class BoundaryConfig(BaseModel):
    """Behavioural configuration for a BoundaryManager.

    Example YAML:
        countries:
          min_zoom: 1
          max_zoom: 18
        states:
          min_zoom: 4
        retry:
          max_retries: 3
        cache:
          max_age: 30
          viewport_debounce: 0.15
    """

    countries: ZoomBand = Field(default_factory=ZoomBand)
    states: ZoomBand = Field(
        default_factory=lambda: ZoomBand(min_zoom=STATE_MIN_ZOOM, max_zoom=STATE_MAX_ZOOM)
    )
    location_zoom_threshold: float = Field(
        default=LOCATION_ZOOM_THRESHOLD,
        ge=MIN_ZOOM,
        le=MAX_ZOOM,
        description="Minimum zoom at which clicks mark locations",
    )
    retry: RetrySettings = Field(default_factory=RetrySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    styles: StyleSettings = Field(default_factory=StyleSettings)
    selection: SelectionPolicy = Field(default_factory=SelectionPolicy)
    use_vector_tiles: bool = Field(default=False, description="Deliver boundaries as vector tiles")

    def band(self, kind: RegionKind) -> ZoomBand:
        return self.countries if kind is RegionKind.COUNTRY else self.states


class BoundarySettings(BaseSettings):
    """Environment-based settings using pydantic-settings.

    Automatically loads from environment variables with BOUNDARY_ prefix.

    Example:
        >>> # BOUNDARY_BACKEND_URL=https://xyz.supabase.co
        >>> # BOUNDARY_BACKEND_KEY=anon-key
        >>> settings = BoundarySettings()
        >>> print(settings.backend_schema)
        gis
    """

    backend_url: Optional[str] = Field(default=None, description="Supabase project URL")
    backend_key: Optional[str] = Field(default=None, description="Supabase anon or service key")
    backend_schema: str = Field(default="gis", description="Schema holding the GIS functions")
    timeout: float = Field(default=10.0, gt=0, description="HTTP timeout in seconds")
    config_path: Optional[str] = Field(default=None, description="YAML BoundaryConfig path")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="console", description="Log format: 'json' or 'console'")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")

    model_config = SettingsConfigDict(
        env_prefix="BOUNDARY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is a known value."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate format is a known value."""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()

    @property
    def backend_configured(self) -> bool:
        return bool(self.backend_url and self.backend_key)
