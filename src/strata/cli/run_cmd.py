"""CLI command running one GraphQL document through a plugin pipeline.

Usage:
    strata run app.schema:schema query.graphql
    strata run schema.graphql query.graphql --variables '{"first": 10}'
    strata run app.schema:schema query.graphql --plugins plugins.yaml --context '{"user": "ada"}'
"""

from __future__ import annotations

import asyncio
import importlib
from pathlib import Path
from typing import Any

import typer
from graphql import ExecutionResult, GraphQLSchema, build_schema

from strata.engine import resolve_schema

app = typer.Typer(help="Run a GraphQL document through the plugin pipeline")


def load_schema(target: str) -> GraphQLSchema:
    """Load a schema from ``module:attribute`` or an SDL file."""
    path = Path(target)
    if path.is_file():
        return build_schema(path.read_text())

    module_name, _, attribute = target.partition(":")
    if not attribute:
        raise typer.BadParameter(f"Expected module:attribute or an SDL file, got {target!r}")
    module = importlib.import_module(module_name)
    try:
        return resolve_schema(getattr(module, attribute))
    except AttributeError:
        raise typer.BadParameter(f"{module_name} has no attribute {attribute!r}") from None
    except TypeError as e:
        raise typer.BadParameter(str(e)) from None


def _parse_json(value: str | None, option: str) -> dict[str, Any] | None:
    import orjson

    if not value:
        return None
    try:
        data = orjson.loads(value)
    except orjson.JSONDecodeError as e:
        raise typer.BadParameter(f"{option} is not valid JSON: {e}") from None
    if not isinstance(data, dict):
        raise typer.BadParameter(f"{option} must be a JSON object")
    return data


@app.callback(invoke_without_command=True)
def run(
    schema: str = typer.Argument(
        ...,
        help="Schema as module:attribute or path to an SDL file",
    ),
    query_file: Path = typer.Argument(
        ...,
        help="File containing the GraphQL document",
        exists=True,
        dir_okay=False,
    ),
    variables: str | None = typer.Option(
        None,
        "--variables",
        "-v",
        help="Variable values as a JSON object",
    ),
    operation_name: str | None = typer.Option(
        None,
        "--operation-name",
        "-o",
        help="Operation to run when the document has several",
    ),
    plugins: Path | None = typer.Option(
        None,
        "--plugins",
        "-p",
        help="Plugin configuration file (YAML or JSON); defaults to settings",
    ),
    context: str | None = typer.Option(
        None,
        "--context",
        "-c",
        help="Initial execution context as a JSON object",
    ),
) -> None:
    """Execute a document and print the result as JSON.

    Exits with code 1 when the result contains errors.
    """
    from rich.console import Console

    from strata.config import settings
    from strata.loader import PluginLoader, build_default_plugins, load_config_file
    from strata.masking import dumps_result
    from strata.observability.logging import configure_logging
    from strata.orchestrator import Orchestrator

    console = Console(stderr=True)
    configure_logging(json_format=settings.log_json, level=settings.log_level)

    graphql_schema = load_schema(schema)
    variable_values = _parse_json(variables, "--variables")
    context_values = _parse_json(context, "--context")

    if plugins is not None:
        plugin_list = PluginLoader(load_config_file(plugins)).load()
    else:
        plugin_list = build_default_plugins(settings)

    orchestrator = Orchestrator(plugin_list, graphql_schema)
    result = asyncio.run(
        orchestrator.run(
            query_file.read_text(),
            variable_values,
            context_values,
            operation_name=operation_name,
        )
    )

    if not isinstance(result, ExecutionResult):
        console.print("[red]Subscriptions cannot be run from the command line[/red]")
        raise typer.Exit(code=2)

    typer.echo(dumps_result(result, indent=True).decode())
    if result.errors:
        raise typer.Exit(code=1)
