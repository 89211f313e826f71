"""CLI commands for strata.

Provides command-line interface using Typer:
- strata hooks: Show the hook registry
- strata run: Run one document through a plugin pipeline

Usage:
    strata --help
    strata hooks
    strata run app.schema:schema query.graphql --variables '{"id": 1}'
    strata run schema.graphql query.graphql --plugins plugins.yaml
"""

import typer

from strata.cli.hooks_cmd import app as hooks_app
from strata.cli.run_cmd import app as run_app

# Main CLI application
app = typer.Typer(
    name="strata",
    help="strata: plugin pipeline for GraphQL execution",
    no_args_is_help=True,
)

# Add subcommands
app.add_typer(hooks_app, name="hooks")
app.add_typer(run_app, name="run")


def _print_version(value: bool) -> None:
    if value:
        from strata import __version__

        typer.echo(f"strata {__version__}")
        raise typer.Exit()


@app.callback()
def callback(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit",
        callback=_print_version,
        is_eager=True,
    ),
) -> None:
    """strata: plugin pipeline for GraphQL execution."""


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
