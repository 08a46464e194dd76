"""Engine configuration."""

from register_engine.config.settings import (
    EngineSettings,
    get_settings,
    load_settings,
    reset_settings_cache,
)

__all__ = ["EngineSettings", "get_settings", "load_settings", "reset_settings_cache"]
