"""Main CLI application module.

This module provides the main entry point for the Cluster Forge CLI.

Command Groups:
- charts: Helm chart plan deployment
"""

import sys

import typer
from loguru import logger

from .commands import charts_app
from .context import build_cli_context

# Create the main CLI application
app = typer.Typer(
    help="🛠️  Cluster Forge CLI - Helm chart deployment orchestrator",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.callback()
def _root(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show debug logs (Helm output, commands)"
    ),
) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")
    logger.debug("Starting cluster-forge")
    ctx.obj = build_cli_context()


app.add_typer(charts_app, name="charts")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
