"""Helm deployer package for dependency-ordered chart deployment.

This package provides a modular approach to deploying sets of Helm charts,
with each concern separated into its own module:

- lifecycle: Per-chart pipeline (prerequisites, pre/post hooks, upgrade, uninstall)
- sequencer: Stage-by-stage plan execution with a barrier between stages
- retry: Fixed-delay retry of Helm upgrades
- backup: Resource snapshots kept across upgrades
- checkers: Post-install verification
- plan: YAML plan files

Usage:
    from src.cli.deployment.helm_deployer import LeveledDeploymentSequencer, load_plan

    loaded = load_plan(Path("plans/plan.yaml"), Path("charts"))
    commands = ShellCommands(kubeconfig, loaded.envs)
    LeveledDeploymentSequencer(commands, console).run(loaded.plan)
"""

from src.infra.helm.errors import DeploymentError

from .backup import BackupStatus, ChartBackupManager
from .checkers import DeploymentReadyChecker, InstallationChecker, PodsReadyChecker
from .lifecycle import ChartLifecycle
from .plan import LoadedPlan, PlanConfig, PlanConfigError, build_plan, load_plan
from .retry import RetryPolicy
from .sequencer import (
    ChartResult,
    DeploymentPlan,
    DeploymentReport,
    LeveledDeploymentSequencer,
    PlanExecutionError,
    StageResult,
)

__all__ = [
    "BackupStatus",
    "ChartBackupManager",
    "ChartLifecycle",
    "ChartResult",
    "DeploymentError",
    "DeploymentPlan",
    "DeploymentReadyChecker",
    "DeploymentReport",
    "InstallationChecker",
    "LeveledDeploymentSequencer",
    "LoadedPlan",
    "PlanConfig",
    "PlanConfigError",
    "PlanExecutionError",
    "PodsReadyChecker",
    "RetryPolicy",
    "StageResult",
    "build_plan",
    "load_plan",
]
