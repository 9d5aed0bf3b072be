"""Deployment plan files.

A plan file is YAML with ``${VAR}`` placeholders substituted from the
environment, validated with pydantic and turned into chart lifecycles:

.. code-block:: yaml

    envs:
      AWS_ACCESS_KEY_ID: ${AWS_ACCESS_KEY_ID}
    autoscaling_enabled: true
    stages:
      - charts:
          - name: cert-manager
            path: cert-manager
            namespace: cert-manager
            values: {installCRDs: "true"}
            upgrade_retry: {attempts: 2, delay_seconds: 30}
            installation_check: {pods_ready: app.kubernetes.io/name=cert-manager}

Chart, CRD and values paths are relative to the charts directory.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Literal

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.helm.descriptor import (
    ChartDescriptor,
    ChartSetValue,
    ChartValuesGenerated,
    CrdsUpdate,
    HelmAction,
    UpgradeRetry,
)
from src.infra.helm.errors import DeploymentError
from src.infra.helm.versions import SemanticVersion
from src.infra.helm.vpa import (
    ChartVpa,
    VpaConfig,
    VpaContainerPolicy,
    VpaTargetKind,
    VpaTargetRef,
)
from src.utils.env_substitution import substitute_env_vars

from .checkers import DeploymentReadyChecker, InstallationChecker, PodsReadyChecker
from .lifecycle import ChartLifecycle
from .sequencer import DeploymentPlan


class PlanConfigError(DeploymentError):
    """Raised when a plan file cannot be read or validated."""


def _set_value(value: str | int | float | bool) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class _PlanModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CrdsUpdateConfig(_PlanModel):
    path: str
    resources: list[str] = Field(default_factory=list)


class UpgradeRetryConfig(_PlanModel):
    attempts: int = Field(ge=0)
    delay_seconds: float = Field(default=0.0, ge=0)


class InstallationCheckConfig(_PlanModel):
    pods_ready: str | None = None
    deployment: str | None = None
    timeout_seconds: float = 120

    @model_validator(mode="after")
    def _exactly_one_check(self) -> InstallationCheckConfig:
        if (self.pods_ready is None) == (self.deployment is None):
            raise ValueError("set exactly one of 'pods_ready' or 'deployment'")
        return self

    def to_checker(self) -> InstallationChecker:
        if self.pods_ready is not None:
            return PodsReadyChecker(self.pods_ready, timeout_seconds=self.timeout_seconds)
        return DeploymentReadyChecker(
            self.deployment or "", timeout_seconds=self.timeout_seconds
        )


class VpaConfigModel(_PlanModel):
    target: str
    kind: Literal["Deployment", "StatefulSet", "DaemonSet"] = "Deployment"
    container: str
    min_cpu: str | None = None
    max_cpu: str | None = None
    min_memory: str | None = None
    max_memory: str | None = None

    def to_config(self) -> VpaConfig:
        return VpaConfig(
            target_ref=VpaTargetRef(name=self.target, kind=VpaTargetKind(self.kind)),
            container_policy=VpaContainerPolicy(
                container_name=self.container,
                min_allowed_cpu=self.min_cpu,
                max_allowed_cpu=self.max_cpu,
                min_allowed_memory=self.min_memory,
                max_allowed_memory=self.max_memory,
            ),
        )


class ChartConfig(_PlanModel):
    name: str
    path: str
    namespace: str = DEFAULT_CONSTANTS.DEFAULT_NAMESPACE
    action: Literal["deploy", "destroy"] = "deploy"
    timeout_seconds: int = Field(default=DEFAULT_CONSTANTS.DEFAULT_CHART_TIMEOUT_SECONDS, gt=0)
    atomic: bool = True
    wait: bool = True
    force_upgrade: bool = False
    recreate_pods: bool = False
    dry_run: bool = False
    values: dict[str, str | int | float | bool] = Field(default_factory=dict)
    values_string: dict[str, str | int | float | bool] = Field(default_factory=dict)
    values_files: list[str] = Field(default_factory=list)
    values_yaml: dict[str, Any] | None = None
    customer_overrides: dict[str, Any] | None = None
    k8s_selector: str | None = None
    backup_resources: list[str] = Field(default_factory=list)
    crds_update: CrdsUpdateConfig | None = None
    skip_if_already_installed: bool = False
    reinstall_if_installed_version_below: str | None = None
    upgrade_retry: UpgradeRetryConfig | None = None
    installation_check: InstallationCheckConfig | None = None
    vpa: list[VpaConfigModel] = Field(default_factory=list)

    @model_validator(mode="after")
    def _valid_threshold(self) -> ChartConfig:
        threshold = self.reinstall_if_installed_version_below
        if threshold is not None and SemanticVersion.parse(threshold) is None:
            raise ValueError(f"'{threshold}' is not a semantic version")
        return self

    def to_descriptor(self, charts_root: Path) -> ChartDescriptor:
        generated: tuple[ChartValuesGenerated, ...] = ()
        if self.values_yaml:
            generated = (
                ChartValuesGenerated.for_chart(
                    self.name, yaml.safe_dump(self.values_yaml, sort_keys=False)
                ),
            )
        overrides: tuple[ChartValuesGenerated, ...] = ()
        if self.customer_overrides:
            overrides = (
                ChartValuesGenerated(
                    filename=f"{self.name}_customer{DEFAULT_CONSTANTS.OVERRIDE_FILE_SUFFIX}",
                    yaml_content=yaml.safe_dump(self.customer_overrides, sort_keys=False),
                ),
            )

        return ChartDescriptor(
            name=self.name,
            path=charts_root / self.path,
            namespace=self.namespace,
            action=HelmAction(self.action),
            timeout_seconds=self.timeout_seconds,
            atomic=self.atomic,
            wait=self.wait,
            force_upgrade=self.force_upgrade,
            recreate_pods=self.recreate_pods,
            dry_run=self.dry_run,
            values=tuple(ChartSetValue(k, _set_value(v)) for k, v in self.values.items()),
            values_string=tuple(
                ChartSetValue(k, _set_value(v)) for k, v in self.values_string.items()
            ),
            values_files=tuple(charts_root / f for f in self.values_files),
            yaml_files_content=generated,
            customer_overrides=overrides,
            k8s_selector=self.k8s_selector,
            backup_resources=tuple(self.backup_resources),
            crds_update=(
                CrdsUpdate(
                    path=charts_root / self.crds_update.path,
                    resources=tuple(self.crds_update.resources),
                )
                if self.crds_update
                else None
            ),
            skip_if_already_installed=self.skip_if_already_installed,
            reinstall_if_installed_version_below=(
                SemanticVersion.parse(self.reinstall_if_installed_version_below)
                if self.reinstall_if_installed_version_below
                else None
            ),
            upgrade_retry=(
                UpgradeRetry(self.upgrade_retry.attempts, self.upgrade_retry.delay_seconds)
                if self.upgrade_retry
                else None
            ),
        )


class StageConfig(_PlanModel):
    charts: list[ChartConfig] = Field(default_factory=list)


class PlanConfig(_PlanModel):
    envs: dict[str, str] = Field(default_factory=dict)
    autoscaling_enabled: bool = True
    stages: list[StageConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_chart_names(self) -> PlanConfig:
        seen: set[str] = set()
        for stage in self.stages:
            for chart in stage.charts:
                if chart.name in seen:
                    raise ValueError(f"chart '{chart.name}' appears more than once")
                seen.add(chart.name)
        return self


@dataclass
class LoadedPlan:
    """A validated plan together with the credentials it declares."""

    plan: DeploymentPlan
    envs: dict[str, str] = field(default_factory=dict)


def build_plan(
    config: PlanConfig, charts_root: Path, *, action: HelmAction | None = None
) -> DeploymentPlan:
    """Turn a validated plan into chart lifecycles.

    Args:
        config: Validated plan
        charts_root: Directory chart paths are relative to
        action: Force every chart to this action (e.g. destroy the whole
            plan); stages run in reverse order when destroying
    """
    vpa_chart = charts_root / DEFAULT_CONSTANTS.VPA_CHART_DIR
    stages: list[list[ChartLifecycle]] = []
    for stage in config.stages:
        lifecycles = []
        for chart in stage.charts:
            descriptor = chart.to_descriptor(charts_root)
            if action is not None and descriptor.action is not action:
                descriptor = replace(descriptor, action=action)
            vpa = (
                ChartVpa(
                    chart_path=vpa_chart,
                    configs=tuple(v.to_config() for v in chart.vpa),
                    enabled=config.autoscaling_enabled,
                )
                if chart.vpa
                else None
            )
            checker = (
                chart.installation_check.to_checker()
                if chart.installation_check
                else None
            )
            lifecycles.append(ChartLifecycle(descriptor, checker, vpa))
        stages.append(lifecycles)

    if action is HelmAction.DESTROY:
        stages.reverse()
    return DeploymentPlan(stages=stages)


def load_plan_config(path: Path) -> PlanConfig:
    """Read, substitute and validate a plan file.

    Raises:
        PlanConfigError: If the file is missing, malformed or invalid
    """
    try:
        content = substitute_env_vars(Path(path).read_text())
    except OSError as e:
        raise PlanConfigError(f"Cannot read plan file {path}", str(e)) from e
    except ValueError as e:
        raise PlanConfigError(f"Cannot resolve plan file {path}", str(e)) from e

    try:
        loaded = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        raise PlanConfigError(f"Error parsing plan file {path}", str(e)) from e

    try:
        config = PlanConfig.model_validate(loaded)
    except ValidationError as e:
        raise PlanConfigError(f"Invalid plan file {path}", str(e)) from e

    logger.debug(
        "Loaded plan {} with {} stages (env: {})",
        path,
        len(config.stages),
        sorted(config.envs),
    )
    return config


def load_plan(
    path: Path, charts_root: Path, *, action: HelmAction | None = None
) -> LoadedPlan:
    """Load a plan file into a runnable plan."""
    config = load_plan_config(path)
    return LoadedPlan(
        plan=build_plan(config, charts_root, action=action),
        envs=dict(config.envs),
    )
