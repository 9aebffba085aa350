"""Configuration settings loader with YAML and environment variables support."""

from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RuntimeConfig(BaseModel):
    """Task runtime configuration."""

    # Raise TaskStateError on reset() while pending instead of abort-then-reset
    strict_reset: bool = False
    history_limit: int = Field(default=50, ge=1)
    log_transitions: bool = True


class Settings(BaseSettings):
    """Application settings."""

    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)

    # Logging
    log_dir: str = "logs"
    log_level: str = "INFO"
    log_to_file: bool = False

    model_config = SettingsConfigDict(env_prefix="ASYNCTASK_", env_nested_delimiter="__")


def _resolve_env_vars(value: Any) -> Any:
    """Resolve environment variables in string values like ${VAR_NAME}."""
    if isinstance(value, str):
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)
        for match in matches:
            env_value = os.getenv(match, "")
            value = value.replace(f"${{{match}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def load_config_file(config_path: Path | None = None) -> dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        # Try default locations
        locations = [
            Path("config/asynctask.yaml"),
            Path("asynctask.yaml"),
            Path.home() / ".asynctask" / "config.yaml",
        ]
        for loc in locations:
            if loc.exists():
                config_path = loc
                break

    if config_path is None or not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        config_data = yaml.safe_load(f) or {}

    return _resolve_env_vars(config_data)


@lru_cache
def get_settings(config_path: str | None = None) -> Settings:
    """Get application settings (cached)."""
    path = Path(config_path) if config_path else None
    config_data = load_config_file(path)

    if "runtime" in config_data:
        config_data["runtime"] = RuntimeConfig(**config_data["runtime"])

    return Settings(**config_data)


def clear_settings_cache() -> None:
    """Clear the settings cache."""
    get_settings.cache_clear()
