"""Rich console singleton and output helpers."""

import json as json_mod

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

# Status/progress to stderr so it doesn't pollute piped JSON output
console = Console(stderr=True)

# Data output to stdout (pipeable to jq)
stdout_console = Console()


def print_ok(msg: str) -> None:
    """Print a success message to stderr."""
    console.print(f"[green]✓[/green] {escape(msg)}")


def print_err(msg: str) -> None:
    """Print an error message to stderr."""
    console.print(f"[red]✗[/red] {escape(msg)}")


def print_warn(msg: str) -> None:
    """Print a warning message to stderr."""
    console.print(f"[yellow]![/yellow] {escape(msg)}")


def output_result(data: dict, *, ctx: typer.Context, title: str = "") -> None:
    """Print result as JSON (stdout) or a Rich panel (stderr)."""
    if ctx.obj.get("json"):
        stdout_console.print_json(json_mod.dumps(data, ensure_ascii=False, default=str))
    else:
        formatted = json_mod.dumps(data, indent=2, ensure_ascii=False, default=str)
        if title:
            console.print(Panel(formatted, title=title, border_style="blue"))
        else:
            console.print(formatted)


def output_table(rows: list[dict], *, ctx: typer.Context, title: str = "", columns: list[str] | None = None) -> None:
    """Print rows as JSON array or Rich table."""
    if ctx.obj.get("json"):
        stdout_console.print_json(json_mod.dumps(rows, ensure_ascii=False, default=str))
        return

    if not rows:
        console.print("[dim]No data[/dim]")
        return

    cols = columns or list(rows[0].keys())
    table = Table(title=title, show_lines=False)
    for col in cols:
        table.add_column(col)
    for row in rows:
        table.add_row(*[str(row.get(c, "")) for c in cols])
    console.print(table)


def resource_data_rows(rows: list, *, with_lists: bool = False) -> list[dict]:
    """Flatten ResourceData rows for table or JSON output.

    With with_lists each row is the full ResourceData dict, list sections included.
    """
    flattened = []
    for row in rows:
        if with_lists:
            flattened.append(row.to_dict())
            continue
        flattened.append({"id": row.base_resource_id, **dict(row.computed_values_map)})
    return flattened


def output_trace(steps: list, *, ctx: typer.Context, title: str = "Rule trace") -> None:
    """Print rule trace steps as a table (skipped under --json)."""
    if ctx.obj.get("json") or ctx.obj.get("quiet"):
        return
    table = Table(title=title, show_lines=False)
    for col in ("rule", "outcome", "detail"):
        table.add_column(col)
    colors = {"fired": "green", "skipped": "dim", "failed": "red", "missing_binding": "yellow"}
    for step in steps:
        color = colors.get(step.outcome.value, "white")
        table.add_row(step.rule, f"[{color}]{step.outcome.value}[/{color}]", escape(step.detail or ""))
    console.print(table)
