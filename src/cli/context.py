"""CLI context and dependency container."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import click
import typer

from src.cli.deployment.shell_commands import ShellCommands
from src.cli.shared.console import CLIConsole, console
from src.infra.constants import DeploymentConstants, DeploymentPaths, get_project_root


@dataclass(frozen=True)
class CLIContext:
    """Runtime dependencies for CLI commands.

    Shell commands are bound to a kubeconfig, which is only known once a
    command has parsed its options, so they are built on demand through
    :meth:`shell_commands`.
    """

    console: CLIConsole
    project_root: Path
    constants: DeploymentConstants
    paths: DeploymentPaths

    def shell_commands(
        self, kubeconfig: Path, envs: Mapping[str, str] | None = None
    ) -> ShellCommands:
        """Build shell commands for the given cluster."""
        return ShellCommands(
            kubeconfig,
            envs,
            project_root=self.project_root,
            console=self.console,
        )


def build_cli_context() -> CLIContext:
    """Build a fresh CLIContext."""
    project_root = get_project_root()
    constants = DeploymentConstants()
    paths = DeploymentPaths(project_root)

    return CLIContext(
        console=console,
        project_root=project_root,
        constants=constants,
        paths=paths,
    )


def get_cli_context(ctx: typer.Context | None = None) -> CLIContext:
    """Return the CLIContext from Typer, falling back to a new instance."""
    context = ctx or click.get_current_context(silent=True)
    if context and isinstance(context.obj, CLIContext):
        return context.obj
    return build_cli_context()
