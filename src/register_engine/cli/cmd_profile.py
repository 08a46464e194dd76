"""Profile command: compute one resource's profile values."""

from pathlib import Path
from typing import List, Optional

import typer

from register_engine.cli._app import app
from register_engine.cli._common import (
    ensure_initialized,
    load_model,
    load_store,
    parse_params,
    setup_logging,
)
from register_engine.cli._console import output_result, output_trace, print_err
from register_engine.errors import ResourceNotFoundError, RulesEngineError


@app.command("profile", help="Compute the profile of one resource.")
def profile_cmd(
    ctx: typer.Context,
    config_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Profile configuration (YAML/JSON)"),
    bundle_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="FHIR Bundle with the resources"),
    resource_id: str = typer.Option(..., "--id", help="Logical id of the profile resource"),
    params: Optional[List[str]] = typer.Option(None, "--param", help="Override value as key=value (repeatable)"),
    trace: bool = typer.Option(False, "--trace", help="Show per-rule outcomes"),
):
    """Load a profile and print its computed values and list sections."""
    ensure_initialized()
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])

    from register_engine.repository import RegisterRepository
    from register_engine.rules.trace import RuleTrace
    from register_engine.schemas.register import ProfileConfiguration

    try:
        configuration = load_model(config_path, ProfileConfiguration)
        store = load_store(bundle_path)
        overrides = parse_params(params)
    except ValueError as e:
        print_err(str(e))
        raise SystemExit(1)

    rule_trace = RuleTrace() if trace else None
    try:
        profile = RegisterRepository(store).load_profile_data(
            configuration, resource_id, overrides, rule_trace
        )
    except ResourceNotFoundError as e:
        print_err(str(e))
        raise SystemExit(1)
    except RulesEngineError as e:
        print_err(f"Profile '{configuration.id}' failed: {e}")
        raise SystemExit(1)

    output_result(profile.to_dict(), ctx=ctx, title=f"{configuration.id}: {resource_id}")
    if rule_trace is not None:
        output_trace(rule_trace.build(), ctx=ctx)
