"""Engine settings schema and loader.

Settings are read from YAML (``config/engine.yaml`` under the project root,
or the file named by REGISTER_ENGINE_CONFIG) and then overridden by
REGISTER_ENGINE_* environment variables.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "REGISTER_ENGINE_CONFIG"

ENV_OVERRIDES = {
    "REGISTER_ENGINE_MAX_WORKERS": "max_workers",
    "REGISTER_ENGINE_PAGE_SIZE": "page_size",
    "REGISTER_ENGINE_LOG_LEVEL": "log_level",
    "REGISTER_ENGINE_TRACE_RULES": "trace_rules",
}

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class EngineSettings(BaseModel):
    """Runtime settings for register loading.

    Attributes:
        max_workers: Threads used to evaluate register rows concurrently.
        page_size: Default rows per register page.
        log_level: Default log level when the CLI is not verbose or quiet.
        trace_rules: Collect per-rule traces in the CLI output.
    """

    max_workers: int = Field(
        default=4,
        description="Threads used to evaluate register rows concurrently",
        ge=1,
        le=64,
    )
    page_size: int = Field(
        default=20,
        description="Default rows per register page",
        ge=1,
    )
    log_level: str = Field(
        default="INFO",
        description="Default log level",
    )
    trace_rules: bool = Field(
        default=False,
        description="Collect per-rule traces",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a standard logging level name."""
        level = v.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"Unknown log level '{v}'. Valid levels: {sorted(VALID_LOG_LEVELS)}")
        return level


def _default_config_path() -> Path:
    from register_engine.startup import get_project_root

    return get_project_root() / "config" / "engine.yaml"


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_name, field_name in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is not None and value != "":
            overrides[field_name] = value
    return overrides


def load_settings(config_path: Optional[Path] = None) -> EngineSettings:
    """Load engine settings from YAML plus environment overrides.

    Args:
        config_path: Optional explicit path to the YAML file. Defaults to
            $REGISTER_ENGINE_CONFIG, then {project_root}/config/engine.yaml.

    Returns:
        EngineSettings; defaults when no file exists.

    Raises:
        ValueError: If the file or an override contains invalid settings.
    """
    if config_path is None:
        env_path = os.getenv(CONFIG_PATH_ENV)
        config_path = Path(env_path) if env_path else _default_config_path()

    data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in engine settings {config_path}: {e}")
        if loaded is None:
            logger.warning(f"Empty engine settings at {config_path}")
        elif not isinstance(loaded, dict):
            raise ValueError(f"Engine settings {config_path} must be a mapping")
        else:
            data.update(loaded)
            logger.debug(f"Loaded engine settings from {config_path}")
    else:
        logger.debug(f"No engine settings found at {config_path}, using defaults")

    data.update(_env_overrides())
    try:
        return EngineSettings.model_validate(data)
    except Exception as e:
        raise ValueError(f"Invalid engine settings: {e}")


# Cached settings (loaded once per process)
_cached_settings: Optional[EngineSettings] = None


def get_settings(force_reload: bool = False) -> EngineSettings:
    """Get the engine settings (cached).

    Args:
        force_reload: If True, reload from disk even if cached.
    """
    global _cached_settings

    if force_reload or _cached_settings is None:
        _cached_settings = load_settings()
    return _cached_settings


def reset_settings_cache() -> None:
    """Reset the settings cache. Used by tests and after config changes."""
    global _cached_settings
    _cached_settings = None
