"""Shared CLI helpers: logging, configuration and bundle loading."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

import yaml
from pydantic import BaseModel, ValidationError
from rich.logging import RichHandler

from register_engine.cli._console import console
from register_engine.config.settings import get_settings
from register_engine.startup import ensure_initialized as _ensure_initialized
from register_engine.store.memory import InMemoryResourceStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def ensure_initialized() -> None:
    """Load .env before settings are read."""
    _ensure_initialized()


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging with Rich handler.

    Without --verbose or --quiet the level comes from the engine settings.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = getattr(logging, get_settings().log_level, logging.INFO)

    handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def load_yaml(path: Path) -> Any:
    """Read a YAML or JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def load_model(path: Path, model: Type[M]) -> M:
    """Load and validate a configuration file.

    Raises:
        ValueError: If the file is not valid YAML/JSON or fails validation.
    """
    try:
        data = load_yaml(path)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}")
    if data is None:
        raise ValueError(f"Empty configuration file {path}")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid {model.__name__} in {path}: {e}")


def load_store(bundle_path: Path) -> InMemoryResourceStore:
    """Load a FHIR Bundle (or JSON array of resources) into a store."""
    store = InMemoryResourceStore.from_file(bundle_path)
    logger.debug(f"Loaded {len(store)} resources from {bundle_path}")
    return store


def parse_params(values: Optional[List[str]]) -> Dict[str, str]:
    """Parse repeated ``--param key=value`` options.

    Raises:
        ValueError: If an entry has no '='.
    """
    params: Dict[str, str] = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid param '{item}', expected key=value")
        params[key.strip()] = value
    return params
