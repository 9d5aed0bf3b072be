"""Error taxonomy for Helm chart deployment.

Every failure raised by the deployment layer derives from ``DeploymentError``
so that CLI commands can render it uniformly. Helm command failures carry the
chart name, the Helm command kind, captured stderr and the names of the
environment variables that were passed to the subprocess. Values of those
variables are never rendered.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum


class DeploymentError(Exception):
    """Raised when a deployment step fails."""

    def __init__(self, message: str, details: str | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class HelmCommand(Enum):
    """Helm sub-command that produced a failure."""

    UPGRADE = "upgrade"
    ROLLBACK = "rollback"
    UNINSTALL = "uninstall"
    STATUS = "status"
    LIST = "list"

    def __str__(self) -> str:
        return self.value


class HelmError(DeploymentError):
    """Base class for failures of a Helm invocation.

    Attributes:
        chart_name: Release the command targeted
        command: Helm sub-command that failed
        stderr: Captured error output (debug lines excluded)
        env_names: Names of the environment variables passed to Helm
    """

    summary = "helm command failed"

    def __init__(
        self,
        chart_name: str,
        command: HelmCommand | None,
        stderr: str = "",
        env_names: Iterable[str] = (),
        message: str | None = None,
    ) -> None:
        self.chart_name = chart_name
        self.command = command
        self.stderr = stderr
        self.env_names = tuple(sorted(env_names))
        super().__init__(
            message or f"helm {command} of '{chart_name}': {self.summary}",
            self._render_details(),
        )

    def _render_details(self) -> str | None:
        lines: list[str] = []
        if self.env_names:
            redacted = ", ".join(f"{name}=<redacted>" for name in self.env_names)
            lines.append(f"env: {redacted}")
        if self.stderr:
            lines.append(self.stderr.strip())
        return "\n".join(lines) or None


class InvalidConfigError(HelmError):
    """Raised when the Helm client cannot be set up, e.g. bad kubeconfig."""

    summary = "invalid configuration"

    def __init__(self, reason: str) -> None:
        super().__init__("", None, message=f"invalid helm configuration: {reason}")


class ReleaseDoesNotExistError(HelmError):
    summary = "release does not exist"


class ReleaseLockedError(HelmError):
    summary = "another operation is in progress on the release"


class CannotRollbackError(HelmError):
    """Raised when rollback is requested for a release without history."""

    summary = "release has no previous revision to roll back to"

    def __init__(
        self, chart_name: str, revision: int, env_names: Iterable[str] = ()
    ) -> None:
        self.revision = revision
        super().__init__(
            chart_name,
            HelmCommand.ROLLBACK,
            env_names=env_names,
            message=(
                f"helm rollback of '{chart_name}': revision {revision} "
                "has no previous revision"
            ),
        )


class RollbackedError(HelmError):
    summary = "upgrade failed and release has been rolled back"


class HelmTimeoutError(HelmError):
    summary = "timed out"


class HelmKilledError(HelmError):
    summary = "killed on cancellation request"


class HelmCommandError(HelmError):
    summary = "command failed"


class ChartError(DeploymentError):
    """Base class for non-Helm failures of a chart lifecycle stage."""

    def __init__(
        self, chart_name: str, message: str, details: str | None = None
    ) -> None:
        self.chart_name = chart_name
        super().__init__(f"{chart_name}: {message}", details)


class ChartPrerequisiteError(ChartError):
    pass


class CrdUpdateError(ChartError):
    pass


class InstallationCheckError(ChartError):
    pass

