"""User preferences persisted in the store."""

from .value_objects import APP_SETTINGS_KEY, DEFAULT_HTTP_PORT, AppSettings, DiscoverySettings, Theme

__all__ = ["APP_SETTINGS_KEY", "AppSettings", "DEFAULT_HTTP_PORT", "DiscoverySettings", "Theme"]
