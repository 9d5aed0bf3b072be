"""Immutable description of a Helm chart to deploy or remove."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from src.infra.constants import DEFAULT_CONSTANTS

from .versions import SemanticVersion


class HelmAction(Enum):
    """What a lifecycle run does with the release."""

    DEPLOY = "deploy"
    DESTROY = "destroy"


@dataclass(frozen=True)
class ChartSetValue:
    """A single ``--set``/``--set-string`` override."""

    key: str
    value: str

    def as_arg(self) -> str:
        return f"{self.key}={self.value}"


@dataclass(frozen=True)
class ChartValuesGenerated:
    """YAML values generated at runtime and written next to the chart."""

    filename: str
    yaml_content: str

    @classmethod
    def for_chart(cls, chart_name: str, yaml_content: str) -> ChartValuesGenerated:
        return cls(
            filename=f"{chart_name}{DEFAULT_CONSTANTS.OVERRIDE_FILE_SUFFIX}",
            yaml_content=yaml_content,
        )


@dataclass(frozen=True)
class CrdsUpdate:
    """CRD manifests applied before the chart and the CRDs they define.

    Attributes:
        path: Directory of CRD manifests (``*.yaml``)
        resources: CRD names (e.g. ``servicemonitors.monitoring.coreos.com``)
    """

    path: Path
    resources: tuple[str, ...] = ()


@dataclass(frozen=True)
class UpgradeRetry:
    """Number of extra upgrade attempts and the pause between them."""

    attempts: int
    delay_seconds: float


@dataclass(frozen=True)
class ChartDescriptor:
    """Everything needed to run Helm for one chart.

    Attributes:
        name: Helm release name
        path: Local chart directory
        namespace: Target namespace
        action: Deploy or destroy
        timeout_seconds: Helm ``--timeout`` in seconds
        atomic: Pass ``--atomic`` on upgrade
        wait: Pass ``--wait`` on upgrade
        force_upgrade: Pass ``--force`` on upgrade
        recreate_pods: Pass ``--recreate-pods`` on upgrade
        dry_run: Pass ``--dry-run`` on upgrade
        values: ``--set`` overrides
        values_string: ``--set-string`` overrides
        values_files: Existing values files, applied first
        yaml_files_content: Generated values files, applied second
        customer_overrides: Generated customer values, applied last
        k8s_selector: Label selector for crash-looping pod cleanup
        backup_resources: Resource kinds snapshot before upgrade
        crds_update: CRDs applied before the chart
        skip_if_already_installed: Do nothing if a release exists
        reinstall_if_installed_version_below: Uninstall older releases first
        upgrade_retry: Retry policy for the upgrade call
    """

    name: str
    path: Path
    namespace: str = DEFAULT_CONSTANTS.DEFAULT_NAMESPACE
    action: HelmAction = HelmAction.DEPLOY
    timeout_seconds: int = DEFAULT_CONSTANTS.DEFAULT_CHART_TIMEOUT_SECONDS
    atomic: bool = True
    wait: bool = True
    force_upgrade: bool = False
    recreate_pods: bool = False
    dry_run: bool = False
    values: tuple[ChartSetValue, ...] = ()
    values_string: tuple[ChartSetValue, ...] = ()
    values_files: tuple[Path, ...] = ()
    yaml_files_content: tuple[ChartValuesGenerated, ...] = ()
    customer_overrides: tuple[ChartValuesGenerated, ...] = ()
    k8s_selector: str | None = None
    backup_resources: tuple[str, ...] = ()
    crds_update: CrdsUpdate | None = None
    skip_if_already_installed: bool = False
    reinstall_if_installed_version_below: SemanticVersion | None = None
    upgrade_retry: UpgradeRetry | None = None

    @property
    def is_deploy(self) -> bool:
        return self.action is HelmAction.DEPLOY


@dataclass
class ChartPayload:
    """Mutable key/value bag threaded through one lifecycle run."""

    data: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self.data
