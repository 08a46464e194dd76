"""Typer command-line interface for registers, profiles and rules.

Usage:
    register-engine --help
    python -m register_engine.cli register config.yaml bundle.json
"""

from register_engine.cli._app import app

# Register command modules (side-effect imports)
import register_engine.cli.cmd_register  # noqa: F401
import register_engine.cli.cmd_profile  # noqa: F401
import register_engine.cli.cmd_rules  # noqa: F401

__all__ = ["app"]
