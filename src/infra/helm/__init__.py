"""Helm chart model shared by the deployment commands.

Exports descriptor types, the error taxonomy, version parsing and the VPA
companion model. Nothing in this package runs a subprocess.
"""

from .descriptor import (
    ChartDescriptor,
    ChartPayload,
    ChartSetValue,
    ChartValuesGenerated,
    CrdsUpdate,
    HelmAction,
    UpgradeRetry,
)
from .errors import (
    CannotRollbackError,
    ChartError,
    ChartPrerequisiteError,
    CrdUpdateError,
    DeploymentError,
    HelmCommand,
    HelmCommandError,
    HelmError,
    HelmKilledError,
    HelmTimeoutError,
    InstallationCheckError,
    InvalidConfigError,
    ReleaseDoesNotExistError,
    ReleaseLockedError,
    RollbackedError,
)
from .versions import SemanticVersion, parse_app_version, parse_chart_version
from .vpa import (
    ChartVpa,
    VpaConfig,
    VpaContainerPolicy,
    VpaTargetKind,
    VpaTargetRef,
    companion_action,
    render_vpa_values,
    stale_vpa_companion_descriptor,
    vpa_companion_descriptor,
)

__all__ = [
    # Descriptors
    "ChartDescriptor",
    "ChartPayload",
    "ChartSetValue",
    "ChartValuesGenerated",
    "CrdsUpdate",
    "HelmAction",
    "UpgradeRetry",
    # Errors
    "DeploymentError",
    "HelmCommand",
    "HelmError",
    "InvalidConfigError",
    "ReleaseDoesNotExistError",
    "ReleaseLockedError",
    "CannotRollbackError",
    "RollbackedError",
    "HelmTimeoutError",
    "HelmKilledError",
    "HelmCommandError",
    "ChartError",
    "ChartPrerequisiteError",
    "CrdUpdateError",
    "InstallationCheckError",
    # Versions
    "SemanticVersion",
    "parse_app_version",
    "parse_chart_version",
    # VPA
    "ChartVpa",
    "VpaConfig",
    "VpaContainerPolicy",
    "VpaTargetKind",
    "VpaTargetRef",
    "companion_action",
    "render_vpa_values",
    "stale_vpa_companion_descriptor",
    "vpa_companion_descriptor",
]
