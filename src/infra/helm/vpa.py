"""Vertical Pod Autoscaler companion charts.

A chart that carries VPA configuration gets a companion release named
``vpa-<chart>`` built from a shared configuration chart. The companion never
holds state of its own: its action is derived from the owning chart's action
and the cluster-wide autoscaling switch.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from src.infra.constants import DEFAULT_CONSTANTS

from .descriptor import ChartDescriptor, ChartValuesGenerated, HelmAction


class VpaTargetKind(Enum):
    DEPLOYMENT = "Deployment"
    STATEFUL_SET = "StatefulSet"
    DAEMON_SET = "DaemonSet"


@dataclass(frozen=True)
class VpaTargetRef:
    """Workload the autoscaler acts on."""

    name: str
    kind: VpaTargetKind = VpaTargetKind.DEPLOYMENT
    api_version: str = "apps/v1"


@dataclass(frozen=True)
class VpaContainerPolicy:
    """Resource bounds for one container.

    Quantities are Kubernetes strings such as ``100m`` or ``256Mi``.
    """

    container_name: str
    min_allowed_cpu: str | None = None
    max_allowed_cpu: str | None = None
    min_allowed_memory: str | None = None
    max_allowed_memory: str | None = None

    @property
    def controlled_resources(self) -> list[str]:
        resources: list[str] = []
        if self.min_allowed_cpu is not None or self.max_allowed_cpu is not None:
            resources.append("cpu")
        if self.min_allowed_memory is not None or self.max_allowed_memory is not None:
            resources.append("memory")
        return resources


@dataclass(frozen=True)
class VpaConfig:
    target_ref: VpaTargetRef
    container_policy: VpaContainerPolicy

    def to_values(self) -> dict[str, Any]:
        policy = self.container_policy
        entry: dict[str, Any] = {
            "targetRefName": self.target_ref.name,
            "targetRefApiVersion": self.target_ref.api_version,
            "targetRefKind": self.target_ref.kind.value,
            "containerName": policy.container_name,
            "minAllowedCpu": policy.min_allowed_cpu,
            "minAllowedMemory": policy.min_allowed_memory,
            "maxAllowedCpu": policy.max_allowed_cpu,
            "maxAllowedMemory": policy.max_allowed_memory,
            "controlledResources": policy.controlled_resources,
        }
        return {key: value for key, value in entry.items() if value is not None}


@dataclass(frozen=True)
class ChartVpa:
    """VPA configuration bound to an owning chart.

    Attributes:
        chart_path: Directory of the shared VPA configuration chart
        configs: One entry per autoscaled container
        enabled: Cluster-wide autoscaling switch
    """

    chart_path: Path
    configs: tuple[VpaConfig, ...]
    enabled: bool = True


def render_vpa_values(configs: tuple[VpaConfig, ...] | list[VpaConfig]) -> str:
    """Render the values file consumed by the VPA configuration chart.

    Example:
        >>> print(render_vpa_values([]), end="")
        vpa_config: []
    """
    return yaml.safe_dump(
        {"vpa_config": [config.to_values() for config in configs]},
        sort_keys=False,
        default_flow_style=False,
    )


def companion_action(owner: HelmAction, autoscaling_enabled: bool) -> HelmAction:
    """Deploy only when the owner deploys and autoscaling is enabled."""
    if owner is HelmAction.DEPLOY and autoscaling_enabled:
        return HelmAction.DEPLOY
    return HelmAction.DESTROY


def vpa_companion_descriptor(owner: ChartDescriptor, vpa: ChartVpa) -> ChartDescriptor:
    """Build the companion release descriptor for ``owner``."""
    name = f"{DEFAULT_CONSTANTS.VPA_RELEASE_PREFIX}{owner.name}"
    return ChartDescriptor(
        name=name,
        path=vpa.chart_path,
        namespace=owner.namespace,
        action=companion_action(owner.action, vpa.enabled),
        timeout_seconds=DEFAULT_CONSTANTS.VPA_TIMEOUT_SECONDS,
        yaml_files_content=(
            ChartValuesGenerated.for_chart(name, render_vpa_values(vpa.configs)),
        ),
    )


def stale_vpa_companion_descriptor(owner: ChartDescriptor) -> ChartDescriptor:
    """Companion to remove for an owner that no longer declares VPA configs.

    Only usable for uninstalls: the release name is all Helm needs.
    """
    return ChartDescriptor(
        name=f"{DEFAULT_CONSTANTS.VPA_RELEASE_PREFIX}{owner.name}",
        path=owner.path,
        namespace=owner.namespace,
        action=HelmAction.DESTROY,
        timeout_seconds=DEFAULT_CONSTANTS.VPA_TIMEOUT_SECONDS,
    )
