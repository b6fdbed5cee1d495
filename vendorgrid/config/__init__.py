"""Configuration module for vendorgrid."""

from .loader import ConfigLoader, load_config
from .models import (
    AutoSaveSettings,
    CacheSettings,
    ConnectivitySettings,
    PortalConfig,
    PortalSettings,
    StoreSettings,
)

__all__ = [
    "AutoSaveSettings",
    "CacheSettings",
    "ConfigLoader",
    "ConnectivitySettings",
    "PortalConfig",
    "PortalSettings",
    "StoreSettings",
    "load_config",
]
