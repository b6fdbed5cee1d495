"""Configuration models for vendorgrid."""

from __future__ import annotations

from pydantic import BaseModel, Field


class StoreSettings(BaseModel):
    """Remote store (portal HTTP API) settings."""

    base_url: str = Field(default="http://localhost:3000", description="Portal base URL")
    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    access_token: str | None = Field(default=None, description="Session token")
    session_cookie: str = Field(
        default="access-token", description="Cookie name carrying the session token"
    )


class AutoSaveSettings(BaseModel):
    """Auto-save behaviour."""

    debounce_ms: int = Field(default=3000, ge=0, description="Quiet period before saving")
    enable_offline_backup: bool = Field(
        default=True, description="Write unsaved work to the local backup slot"
    )


class CacheSettings(BaseModel):
    """Local cache settings."""

    path: str = Field(default="~/.vendorgrid/cache.duckdb", description="DuckDB file path")


class ConnectivitySettings(BaseModel):
    """Network connectivity probing."""

    enabled: bool = Field(default=True)
    poll_interval: float = Field(default=15.0, gt=0, description="Seconds between checks")


class PortalSettings(BaseModel):
    """Global settings."""

    log_level: str = Field(default="INFO", description="Root logging level")


class PortalConfig(BaseModel):
    """Root configuration model."""

    version: int = Field(default=1)
    store: StoreSettings = Field(default_factory=StoreSettings)
    autosave: AutoSaveSettings = Field(default_factory=AutoSaveSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    connectivity: ConnectivitySettings = Field(default_factory=ConnectivitySettings)
    settings: PortalSettings = Field(default_factory=PortalSettings)
