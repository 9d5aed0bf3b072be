"""Shell command abstractions for Helm chart deployment.

This package provides a clean interface for the shell commands used during
deployment. It is organized into specialized modules for each tool:

- helm: Helm release management, failure classification, lock recovery
- kubectl: CRDs, diagnostics, backups and pod cleanup
- runner: subprocess execution with streaming and abort support

Usage:
    from src.cli.deployment.shell_commands import ShellCommands

    commands = ShellCommands(Path("~/.kube/config").expanduser())
    for release in commands.helm.list_releases() or []:
        print(release.name, release.chart_version)
"""

from collections.abc import Mapping
from pathlib import Path

from src.utils.console_like import ConsoleLike

from .helm import HelmCommands, classify_helm_failure
from .killer import AbortReason, CommandKiller
from .kubectl import KubectlCommands
from .lock_recovery import LockState, ReleaseLockRecovery
from .runner import CommandRunner
from .types import CommandResult, HelmRelease, ReleaseStatus


class ShellCommands:
    """Unified interface for all shell command operations.

    Both tools share one runner, one kubeconfig and one set of credential
    environment variables.

    Attributes:
        helm: Helm-related commands
        kubectl: Kubernetes kubectl commands
    """

    def __init__(
        self,
        kubeconfig: Path,
        envs: Mapping[str, str] | None = None,
        *,
        project_root: Path | None = None,
        console: ConsoleLike | None = None,
    ) -> None:
        """Initialize the shell commands executor.

        Args:
            kubeconfig: Path to the cluster kubeconfig
            envs: Credential environment variables (e.g. cloud provider keys)
            project_root: Working directory for commands
            console: Sink for user-facing progress messages

        Raises:
            InvalidConfigError: If the kubeconfig file does not exist
        """
        self._runner = CommandRunner(project_root)
        self.helm = HelmCommands(self._runner, kubeconfig, envs, console=console)
        self.kubectl = KubectlCommands(self._runner, kubeconfig, envs)

    @property
    def runner(self) -> CommandRunner:
        return self._runner


__all__ = [
    "ShellCommands",
    "CommandResult",
    "HelmRelease",
    "ReleaseStatus",
    # Specialized command classes for direct usage
    "HelmCommands",
    "KubectlCommands",
    "CommandRunner",
    "CommandKiller",
    "AbortReason",
    "ReleaseLockRecovery",
    "LockState",
    "classify_helm_failure",
]
