"""Root Typer application: engine settings, log level and output mode."""

import os
from pathlib import Path
from typing import Optional

import typer

from register_engine import __version__
from register_engine.config.settings import CONFIG_PATH_ENV, reset_settings_cache

app = typer.Typer(
    name="register-engine",
    help="Build register rows and profiles from FHIR bundles with YAML rule configs.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=False,
)


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"register-engine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    engine_config: Optional[Path] = typer.Option(
        None,
        "--engine-config",
        "-c",
        help="Engine settings YAML (workers, page size, log level, tracing)",
        exists=True,
        dir_okay=False,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log rule and fetch details"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Warnings and errors only"),
    json_output: bool = typer.Option(False, "--json", help="Print rows, profiles and traces as JSON"),
    version: bool = typer.Option(
        False, "--version", callback=_print_version, is_eager=True, help="Show the version and exit"
    ),
):
    """Evaluate register and profile rules over a bundle of FHIR resources.

    [bold]register[/bold] and [bold]count[/bold] page through base resources,
    [bold]profile[/bold] loads one resource, [bold]rules[/bold] fires a rule file.
    """
    if engine_config is not None:
        os.environ[CONFIG_PATH_ENV] = str(engine_config)
        reset_settings_cache()
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["json"] = json_output
