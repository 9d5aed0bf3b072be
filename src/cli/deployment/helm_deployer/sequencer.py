"""Stage-by-stage execution of a deployment plan.

A plan is an ordered list of stages. Stages encode real dependencies
(priority classes and CRDs before anything referencing them, ingress before
agents relying on it), so a stage only starts once every chart of the
previous stage has finished. Charts inside a stage are independent and run
concurrently.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.helm.descriptor import ChartPayload, HelmAction
from src.infra.helm.errors import DeploymentError
from src.utils.console_like import ConsoleLike, coalesce_console

from .lifecycle import ChartLifecycle

if TYPE_CHECKING:
    from ..shell_commands import ShellCommands

_ACTION_ICONS = {HelmAction.DEPLOY: "📥", HelmAction.DESTROY: "📤"}


@dataclass
class DeploymentPlan:
    """Ordered stages of charts."""

    stages: list[list[ChartLifecycle]] = field(default_factory=list)

    def summary(self) -> list[str]:
        """One line per stage, e.g. ``Level 0: 📤 old-agent, 📥 cert-manager``."""
        return [
            f"Level {index}: "
            + ", ".join(
                sorted(f"{_ACTION_ICONS[chart.action]} {chart.name}" for chart in stage)
            )
            for index, stage in enumerate(self.stages)
        ]

    def __len__(self) -> int:
        return sum(len(stage) for stage in self.stages)


@dataclass
class ChartResult:
    name: str
    action: HelmAction
    payload: ChartPayload | None = None
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class StageResult:
    index: int
    charts: list[ChartResult] = field(default_factory=list)

    @property
    def failures(self) -> list[ChartResult]:
        return [chart for chart in self.charts if not chart.succeeded]


@dataclass
class DeploymentReport:
    stages: list[StageResult] = field(default_factory=list)
    dry_run: bool = False

    @property
    def failures(self) -> list[ChartResult]:
        return [chart for stage in self.stages for chart in stage.failures]

    @property
    def succeeded(self) -> bool:
        return not self.failures


class PlanExecutionError(DeploymentError):
    """Raised when at least one chart of a plan failed.

    Attributes:
        report: Results of every stage that ran
        first_error: Error of the first failed chart, in stage order
    """

    def __init__(self, report: DeploymentReport, message: str | None = None) -> None:
        self.report = report
        failures = report.failures
        self.first_error = failures[0].error if failures else None
        names = ", ".join(chart.name for chart in failures)
        super().__init__(
            message or f"Deployment failed for: {names}",
            "\n".join(f"{chart.name}: {chart.error}" for chart in failures) or None,
        )


class LeveledDeploymentSequencer:
    """Runs a plan stage by stage with a barrier between stages.

    Args:
        commands: Shell commands bound to the target cluster
        console: Sink for progress messages
        max_workers: Upper bound on charts running at once within a stage
        continue_on_failure: Keep running later stages after a failed stage
        dry_run: Print the plan without deploying anything
        is_cancelled: Cancellation predicate passed to every chart
    """

    def __init__(
        self,
        commands: ShellCommands,
        console: ConsoleLike | None = None,
        *,
        max_workers: int = DEFAULT_CONSTANTS.DEFAULT_MAX_WORKERS,
        continue_on_failure: bool = False,
        dry_run: bool = False,
        is_cancelled: Callable[[], bool] | None = None,
    ) -> None:
        self.commands = commands
        self.console = coalesce_console(console)
        self.max_workers = max(1, max_workers)
        self.continue_on_failure = continue_on_failure
        self.dry_run = dry_run
        self.is_cancelled = is_cancelled

    def run(self, plan: DeploymentPlan) -> DeploymentReport:
        """Execute every stage of ``plan`` in order.

        Raises:
            PlanExecutionError: If any chart failed or the run was cancelled
        """
        self.console.info("Deploying Helm charts in this sequence:")
        for line in plan.summary():
            self.console.print(f"  {line}")

        report = DeploymentReport(dry_run=self.dry_run)
        if self.dry_run:
            self.console.warn("Dry run mode enabled, skipping actual deployment")
            return report

        for index, stage in enumerate(plan.stages):
            if self.is_cancelled is not None and self.is_cancelled():
                raise PlanExecutionError(
                    report, f"Deployment cancelled before level {index}"
                )

            self.console.info(f"Starting level {index}")
            result = self._run_stage(index, stage)
            report.stages.append(result)

            if result.failures:
                if not self.continue_on_failure:
                    raise PlanExecutionError(report)
                self.console.warn(
                    f"Level {index} had failures, continuing with next level"
                )
            else:
                self.console.ok(f"Charts of level {index} deployed")

        if report.failures:
            raise PlanExecutionError(report)
        return report

    def _run_stage(self, index: int, stage: Sequence[ChartLifecycle]) -> StageResult:
        if not stage:
            return StageResult(index=index)

        workers = min(self.max_workers, len(stage))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix=f"level-{index}"
        ) as executor:
            futures = [executor.submit(self._run_chart, chart) for chart in stage]
            # Barrier: every chart finishes before the stage is judged
            wait(futures)

        return StageResult(index=index, charts=[f.result() for f in futures])

    def _run_chart(self, chart: ChartLifecycle) -> ChartResult:
        try:
            payload = chart.run(
                self.commands, console=self.console, is_cancelled=self.is_cancelled
            )
        except Exception as e:
            logger.opt(exception=e).debug("Chart {} failed", chart.name)
            return ChartResult(name=chart.name, action=chart.action, error=e)
        return ChartResult(name=chart.name, action=chart.action, payload=payload)
