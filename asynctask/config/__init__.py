"""Configuration module."""

from .settings import RuntimeConfig, Settings, clear_settings_cache, get_settings, load_config_file

__all__ = ["Settings", "RuntimeConfig", "get_settings", "clear_settings_cache", "load_config_file"]
