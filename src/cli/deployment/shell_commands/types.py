"""Data types for shell command results.

This module contains all dataclasses and type definitions used across
the shell command modules.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.helm.versions import (
    SemanticVersion,
    parse_app_version,
    parse_chart_version,
)

from .killer import AbortReason

__all__ = [
    "CommandResult",
    "ReleaseStatus",
    "HelmRelease",
]


@dataclass
class CommandResult:
    """Result of a shell command execution.

    Attributes:
        success: Whether the command exited with code 0 and was not aborted
        stdout: Standard output from the command
        stderr: Standard error from the command
        returncode: Process exit code
        abort_reason: Set when the runner killed the process
    """

    success: bool
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0
    abort_reason: AbortReason | None = None


@dataclass(frozen=True)
class ReleaseStatus:
    """Current state of a Helm release as reported by ``helm status``.

    Attributes:
        revision: Release revision (0 when Helm output could not be parsed)
        status: Helm status string (deployed, failed, pending-upgrade, ...)
    """

    revision: int
    status: str

    @property
    def is_locked(self) -> bool:
        """A release is locked while a Helm operation is pending on it."""
        return self.status.startswith(DEFAULT_CONSTANTS.LOCKED_STATUS_PREFIX)


@dataclass
class HelmRelease:
    """Information about a Helm release.

    Attributes:
        name: Release name
        namespace: Kubernetes namespace
        revision: Release revision number
        status: Release status (deployed, failed, pending-install, ...)
        chart: Raw ``<chart>-<version>`` column
        app_version: Raw application version column
    """

    name: str
    namespace: str
    revision: int
    status: str
    chart: str = ""
    app_version: str = ""

    @property
    def chart_version(self) -> SemanticVersion | None:
        return parse_chart_version(self.chart)

    @property
    def parsed_app_version(self) -> SemanticVersion | None:
        return parse_app_version(self.app_version)
