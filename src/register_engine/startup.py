"""Centralized initialization for register_engine entry points.

Loads the project's .env file once so REGISTER_ENGINE_* overrides are
visible to the settings loader. The CLI calls ensure_initialized() before
anything reads settings.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass
class StartupState:
    """State after initialization."""

    project_root: Path
    env_loaded: bool = False


# Module-level state
_initialized: bool = False
_state: Optional[StartupState] = None


def _find_project_root(start_path: Optional[Path] = None) -> Path:
    """Find project root by looking for pyproject.toml.

    Args:
        start_path: Starting path for search. Defaults to the current directory.

    Returns:
        Project root directory, or start_path if none is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return current


def _load_env(project_root: Path) -> bool:
    """Load .env from the project root without overriding the environment.

    Returns:
        True if .env was loaded, False otherwise.
    """
    env_path = project_root / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=False)
        logger.debug(f"Loaded .env from {env_path}")
        return True
    logger.debug(f"No .env at {env_path}")
    return False


def ensure_initialized(start_path: Optional[Path] = None) -> StartupState:
    """Ensure the application is initialized (idempotent).

    Returns:
        Current StartupState.
    """
    global _initialized, _state

    if _initialized and _state is not None:
        return _state

    project_root = _find_project_root(start_path)
    env_loaded = _load_env(project_root)
    _state = StartupState(project_root=project_root, env_loaded=env_loaded)
    _initialized = True
    return _state


def get_project_root() -> Path:
    """Get the project root directory, initializing if needed."""
    return ensure_initialized().project_root


def reset_for_testing() -> None:
    """Reset initialization state for test isolation."""
    global _initialized, _state
    _initialized = False
    _state = None
