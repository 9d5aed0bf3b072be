"""Deployment constants and configuration.

This module centralizes all magic strings, paths, and configuration values
used throughout the chart deployment process.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class DeploymentConstants:
    """Constants for Helm chart deployment.

    All attributes are class-level and immutable.
    """

    # Helm invocation
    HELM_HISTORY_MAX: int = 50
    DEFAULT_CHART_TIMEOUT_SECONDS: int = 600
    DEFAULT_NAMESPACE: str = "kube-system"

    # The process killer fires this long after Helm's own --timeout
    KILL_GRACE_SECONDS: int = 60
    KILLER_POLL_SECONDS: float = 1.0

    # Helm output markers
    RELEASE_NOT_FOUND_MARKER: str = "release: not found"
    HELM_DEBUG_MARKER: str = " [debug] "
    LOCKED_STATUS_PREFIX: str = "pending-"

    # Generated values files
    OVERRIDE_FILE_SUFFIX: str = "_override.yaml"

    # VPA companion charts
    VPA_CHART_DIR: str = "common/charts/vertical-pod-autoscaler-configs"
    VPA_RELEASE_PREFIX: str = "vpa-"
    VPA_TIMEOUT_SECONDS: int = 15

    # Crash-looping pod cleanup
    CRASH_LOOP_REASON: str = "CrashLoopBackOff"
    CRASH_LOOP_RESTART_THRESHOLD: int = 5

    # CRDs
    CRD_ESTABLISHED_TIMEOUT: str = "60s"

    # Resource backups kept as secrets during upgrades
    BACKUP_SECRET_SUFFIX: str = "backup"
    BACKUP_LABEL: str = "cluster-forge.io/backup-of"

    # Sequencer
    DEFAULT_MAX_WORKERS: int = 8

    # Relative path fragments for project structure
    CHARTS_DIR: str = "charts"
    PLANS_DIR: str = "plans"
    DEFAULT_PLAN_FILE: str = "plan.yaml"


class DeploymentPaths:
    """Path resolver for chart and plan directories.

    All paths are derived from the project root.
    """

    def __init__(self, project_root: Path) -> None:
        self._project_root = project_root
        self._constants = DEFAULT_CONSTANTS

        self.charts = project_root / self._constants.CHARTS_DIR
        self.plans = project_root / self._constants.PLANS_DIR

    @property
    def project_root(self) -> Path:
        """Get path to project root."""
        return self._project_root

    @property
    def default_plan(self) -> Path:
        """Get path to the default deployment plan."""
        return self.plans / self._constants.DEFAULT_PLAN_FILE


DEFAULT_CONSTANTS = DeploymentConstants()


def get_project_root() -> Path:
    """Find the project root, the nearest directory holding pyproject.toml.

    Falls back to the checkout containing the ``src`` package.
    """
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / "pyproject.toml").is_file():
            return parent
    return current.parents[2]
