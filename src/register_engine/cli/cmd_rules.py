"""Rules command: fire a rule file against a single resource."""

from pathlib import Path
from typing import List, Optional

import typer

from register_engine.cli._app import app
from register_engine.cli._common import (
    ensure_initialized,
    load_model,
    load_store,
    load_yaml,
    parse_params,
    setup_logging,
)
from register_engine.cli._console import output_result, output_trace, print_err
from register_engine.errors import RulesEngineError


@app.command("rules", help="Fire a list of rules against one resource.")
def rules_cmd(
    ctx: typer.Context,
    rules_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Rule list (YAML/JSON)"),
    bundle_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="FHIR Bundle with the resources"),
    resource_type: str = typer.Option(..., "--type", help="Resource type of the root"),
    resource_id: str = typer.Option(..., "--id", help="Logical id of the root"),
    relations_path: Optional[Path] = typer.Option(
        None, "--relations", exists=True, dir_okay=False, help="FhirResourceConfig with relations to fetch"
    ),
    params: Optional[List[str]] = typer.Option(None, "--param", help="Extra fact as key=value (repeatable)"),
):
    """Fire rules and print the computed values with a per-rule trace."""
    ensure_initialized()
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])

    from register_engine.executor import ResourceDataRulesExecutor
    from register_engine.fetcher.graph_fetcher import ResourceGraphFetcher
    from register_engine.rules.trace import RuleTrace
    from register_engine.schemas.resource_config import FhirResourceConfig
    from register_engine.schemas.resource_data import RepositoryResourceData
    from register_engine.schemas.rule_config import RuleConfig

    try:
        raw_rules = load_yaml(rules_path)
        if isinstance(raw_rules, dict):
            raw_rules = raw_rules.get("rules", [])
        rule_configs = [RuleConfig.model_validate(rule) for rule in raw_rules or []]
        relations = load_model(relations_path, FhirResourceConfig) if relations_path else None
        store = load_store(bundle_path)
        overrides = parse_params(params)
    except ValueError as e:
        print_err(str(e))
        raise SystemExit(1)

    try:
        root = store.get(resource_type, resource_id)
        if relations is not None:
            repository_data = ResourceGraphFetcher(store).fetch_graph(root, relations, overrides)
        else:
            repository_data = RepositoryResourceData(resource=root)
        trace = RuleTrace()
        result = ResourceDataRulesExecutor().process_resource_data(
            repository_data, rule_configs, overrides, trace=trace
        )
    except RulesEngineError as e:
        print_err(str(e))
        raise SystemExit(1)

    output_result(
        {"computedValuesMap": dict(result.computed_values_map), "summary": trace.summary()},
        ctx=ctx,
        title=f"{resource_type}/{resource_id}",
    )
    output_trace(trace.build(), ctx=ctx)
