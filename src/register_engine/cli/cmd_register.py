"""Register commands: render a register page and count its rows."""

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
from register_engine.cli._console import (
    console,
    output_result,
    output_table,
    output_trace,
    print_err,
    print_ok,
    resource_data_rows,
)
from register_engine.errors import RulesEngineError


@app.command("register", help="Render one page of a register.")
def register_cmd(
    ctx: typer.Context,
    config_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Register configuration (YAML/JSON)"),
    bundle_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="FHIR Bundle with the resources"),
    page: int = typer.Option(0, "--page", "-p", min=0, help="Zero-based page number"),
    params: Optional[List[str]] = typer.Option(None, "--param", help="Override value as key=value (repeatable)"),
    trace: bool = typer.Option(False, "--trace", help="Show per-rule outcomes for each row"),
    lists: bool = typer.Option(False, "--lists", help="Include materialized list sections"),
):
    """Load a register page and print each row's computed values."""
    ensure_initialized()
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])

    from register_engine.config.settings import get_settings
    from register_engine.repository import RegisterRepository
    from register_engine.schemas.register import RegisterConfiguration

    try:
        configuration = load_model(config_path, RegisterConfiguration)
        store = load_store(bundle_path)
        overrides = parse_params(params)
    except ValueError as e:
        print_err(str(e))
        raise SystemExit(1)

    traces = {} if (trace or get_settings().trace_rules) else None
    repository = RegisterRepository(store)
    try:
        rows = repository.load_register_data(configuration, page, overrides, traces)
    except RulesEngineError as e:
        print_err(f"Register '{configuration.id}' failed: {e}")
        raise SystemExit(1)

    output_table(
        resource_data_rows(rows, with_lists=lists),
        ctx=ctx,
        title=f"{configuration.id} (page {page})",
    )
    if traces:
        for row_id, row_trace in traces.items():
            output_trace(row_trace.build(), ctx=ctx, title=f"Rule trace: {row_id}")
    if not ctx.obj["json"] and not ctx.obj["quiet"]:
        print_ok(f"{len(rows)} rows")


@app.command("count", help="Count the base resources of a register.")
def count_cmd(
    ctx: typer.Context,
    config_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Register configuration (YAML/JSON)"),
    bundle_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="FHIR Bundle with the resources"),
):
    """Print the number of rows in a register."""
    ensure_initialized()
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])

    from register_engine.repository import RegisterRepository
    from register_engine.schemas.register import RegisterConfiguration

    try:
        configuration = load_model(config_path, RegisterConfiguration)
        store = load_store(bundle_path)
    except ValueError as e:
        print_err(str(e))
        raise SystemExit(1)

    count = RegisterRepository(store).count_register_data(configuration)
    if ctx.obj["json"]:
        output_result({"register": configuration.id, "count": count}, ctx=ctx)
    else:
        console.print(f"{configuration.id}: {count}")
