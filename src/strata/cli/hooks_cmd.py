"""CLI command listing the hook registry.

Usage:
    strata hooks
    strata hooks --format json
"""

from __future__ import annotations

import typer

from strata.hooks import HOOK_METADATA

app = typer.Typer(help="Show the lifecycle hook registry")


@app.callback(invoke_without_command=True)
def hooks(
    output_format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text, json",
    ),
) -> None:
    """List hook kinds with their context and legal control actions."""
    import orjson
    from rich.console import Console
    from rich.table import Table

    console = Console()

    if output_format == "json":
        rows = [
            {
                "kind": kind.value,
                "description": spec.description,
                "context": spec.context,
                "before": sorted(action.name for action in spec.before_actions),
                "after": sorted(action.name for action in spec.after_actions),
                "bestEffort": spec.best_effort,
                "perRequest": spec.per_request,
            }
            for kind, spec in HOOK_METADATA.items()
        ]
        typer.echo(orjson.dumps(rows, option=orjson.OPT_INDENT_2).decode())
        return

    table = Table(title="Lifecycle hooks")
    table.add_column("Kind", style="cyan")
    table.add_column("Context")
    table.add_column("Before actions")
    table.add_column("After actions")
    table.add_column("Best effort", justify="center")

    for kind, spec in HOOK_METADATA.items():
        table.add_row(
            kind.value,
            spec.context,
            ", ".join(sorted(a.name.lower() for a in spec.before_actions)) or "-",
            ", ".join(sorted(a.name.lower() for a in spec.after_actions)) or "-",
            "yes" if spec.best_effort else "no",
        )

    console.print(table)
