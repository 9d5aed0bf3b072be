"""Per-chart deployment pipeline.

A ``ChartLifecycle`` binds a chart descriptor to an optional installation
checker and an optional VPA companion, and runs the chart through:

1. check_prerequisites - referenced values files exist
2. pre_exec - crash-looping pod cleanup, CRD force-apply, VPA companion upgrade
3. exec - upgrade (with reinstall, skip, backup and CRD gate) or uninstall
4. post_exec - installation check, VPA companion removal
5. on_deploy_failure - diagnostic event dump, only when exec failed

Steps named ``_best_effort_*`` report failures and carry on. Everything else
raises and aborts the remaining steps for the chart.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from loguru import logger
from rich.markup import escape

from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.helm.descriptor import ChartDescriptor, ChartPayload, HelmAction
from src.infra.helm.errors import (
    ChartPrerequisiteError,
    CrdUpdateError,
    DeploymentError,
)
from src.infra.helm.vpa import (
    ChartVpa,
    stale_vpa_companion_descriptor,
    vpa_companion_descriptor,
)
from src.utils.console_like import ConsoleLike, coalesce_console

from .backup import BackupStatus, ChartBackupManager
from .retry import RetryPolicy

if TYPE_CHECKING:
    from src.infra.helm.versions import SemanticVersion

    from ..shell_commands import ShellCommands
    from ..shell_commands.types import HelmRelease
    from .checkers import InstallationChecker

CancelPredicate = Callable[[], bool]


class ChartLifecycle:
    """Runs one chart through its deployment pipeline.

    Instances are stateless across runs; every ``run`` gets a fresh payload.

    Args:
        descriptor: Chart to deploy or destroy
        installation_checker: Verification run after a successful deploy
        vpa: VPA configuration, turning this into a composite chart
        retry_sleep: Sleep used between upgrade attempts
    """

    def __init__(
        self,
        descriptor: ChartDescriptor,
        installation_checker: InstallationChecker | None = None,
        vpa: ChartVpa | None = None,
        *,
        retry_sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.descriptor = descriptor
        self.installation_checker = installation_checker
        self.vpa = vpa
        self._retry_sleep = retry_sleep

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def action(self) -> HelmAction:
        return self.descriptor.action

    @property
    def vpa_companion(self) -> ChartDescriptor | None:
        """Companion release of this chart.

        A destroyed chart always gets one, so a `vpa-<name>` release left over
        from an earlier plan is removed as well.
        """
        if self.vpa is None:
            if self.descriptor.is_deploy:
                return None
            return stale_vpa_companion_descriptor(self.descriptor)
        return vpa_companion_descriptor(self.descriptor, self.vpa)

    # =========================================================================
    # Pipeline
    # =========================================================================

    def run(
        self,
        commands: ShellCommands,
        *,
        console: ConsoleLike | None = None,
        is_cancelled: CancelPredicate | None = None,
    ) -> ChartPayload:
        """Run every step for this chart.

        Raises:
            DeploymentError: Typed failure of the first critical step that failed
        """
        console = coalesce_console(console)
        payload = ChartPayload()
        logger.debug("Running {} of chart {}", self.action.value, self.name)

        self.check_prerequisites(payload)
        self.pre_exec(commands, console, payload, is_cancelled)
        try:
            self.exec(commands, console, payload, is_cancelled)
        except Exception as e:
            self.on_deploy_failure(commands, console, e)
            raise
        self.post_exec(commands, console, payload)
        return payload

    def check_prerequisites(self, payload: ChartPayload) -> None:
        if self.descriptor.is_deploy and not self.descriptor.path.is_dir():
            raise ChartPrerequisiteError(
                self.name, "chart directory not found", str(self.descriptor.path)
            )
        missing = [str(p) for p in self.descriptor.values_files if not p.is_file()]
        if missing:
            raise ChartPrerequisiteError(
                self.name,
                "values files not found",
                "\n".join(missing),
            )

    def pre_exec(
        self,
        commands: ShellCommands,
        console: ConsoleLike,
        payload: ChartPayload,
        is_cancelled: CancelPredicate | None = None,
    ) -> None:
        chart = self.descriptor
        if chart.k8s_selector:
            self._best_effort_delete_crash_looping_pods(commands, console)

        if chart.is_deploy and chart.crds_update is not None:
            result = commands.kubectl.apply_crds(
                chart.crds_update.path, field_manager=chart.name
            )
            if not result.success:
                raise CrdUpdateError(
                    chart.name,
                    f"cannot update CRDs from {chart.crds_update.path}",
                    result.stderr,
                )

        companion = self.vpa_companion
        if (
            companion is not None
            and chart.is_deploy
            and companion.action is HelmAction.DEPLOY
        ):
            console.info(f"Deploying VPA configuration {companion.name}")
            commands.helm.upgrade(
                companion,
                is_cancelled=is_cancelled,
                on_stdout=self._stdout_sink(companion.name),
                on_stderr=self._stderr_sink(companion.name, console),
            )

    def exec(
        self,
        commands: ShellCommands,
        console: ConsoleLike,
        payload: ChartPayload,
        is_cancelled: CancelPredicate | None = None,
    ) -> None:
        if self.descriptor.is_deploy:
            self._deploy(commands, console, payload, is_cancelled)
        else:
            self._destroy(commands, console)

    def post_exec(
        self, commands: ShellCommands, console: ConsoleLike, payload: ChartPayload
    ) -> None:
        chart = self.descriptor
        if (
            chart.is_deploy
            and self.installation_checker is not None
            and not payload.get("skipped", False)
        ):
            self.installation_checker.verify(chart, commands)

        companion = self.vpa_companion
        if companion is not None and not chart.is_deploy:
            console.info(f"Removing VPA configuration {companion.name}")
            commands.helm.uninstall(companion)

    def on_deploy_failure(
        self, commands: ShellCommands, console: ConsoleLike, error: BaseException
    ) -> None:
        """Dump namespace events. Never masks ``error``."""
        console.error(f"Chart {self.name} failed: {error}")
        try:
            result = commands.kubectl.get_events(self.descriptor.namespace)
        except Exception as e:
            console.warn(f"Could not fetch events of {self.descriptor.namespace}: {e}")
            return
        if not result.success:
            console.warn(
                f"Could not fetch events of {self.descriptor.namespace}: {result.stderr}"
            )
            return
        console.print(
            f"[dim]Events in {self.descriptor.namespace}:[/dim]\n{escape(result.stdout)}"
        )

    # =========================================================================
    # Deploy / Destroy
    # =========================================================================

    def _deploy(
        self,
        commands: ShellCommands,
        console: ConsoleLike,
        payload: ChartPayload,
        is_cancelled: CancelPredicate | None,
    ) -> None:
        chart = self.descriptor
        needs_release = (
            chart.reinstall_if_installed_version_below is not None
            or chart.skip_if_already_installed
            or bool(chart.backup_resources)
        )
        installed = (
            self._best_effort_installed_release(commands) if needs_release else None
        )

        threshold = chart.reinstall_if_installed_version_below
        if threshold is not None and installed is not None:
            current = installed.chart_version
            if current is not None and current < threshold:
                if self._best_effort_reinstall_uninstall(commands, console, current):
                    installed = None

        if chart.skip_if_already_installed and installed is not None:
            console.info(f"{chart.name} already installed, skipping")
            payload.set("skipped", True)
            return

        backup = self._best_effort_backup(commands, console, installed)

        if chart.crds_update is not None:
            for crd in chart.crds_update.resources:
                result = commands.kubectl.wait_crd_established(crd)
                if not result.success:
                    raise CrdUpdateError(
                        chart.name, f"CRD {crd} is not established", result.stderr
                    )

        policy = RetryPolicy.from_config(chart.upgrade_retry, sleep=self._retry_sleep)
        try:
            result = policy.call(
                lambda: commands.helm.upgrade(
                    chart,
                    is_cancelled=is_cancelled,
                    on_stdout=self._stdout_sink(chart.name),
                    on_stderr=self._stderr_sink(chart.name, console),
                )
            )
        except Exception:
            if backup is BackupStatus.BACKED_UP:
                self._best_effort_backup_discard(commands, console)
            raise

        if backup is BackupStatus.BACKED_UP:
            self._best_effort_backup_restore(commands, console)
        payload.set("upgrade_result", result)
        console.ok(f"{chart.name} deployed")

    def _destroy(self, commands: ShellCommands, console: ConsoleLike) -> None:
        chart = self.descriptor
        if chart.crds_update is not None:
            for crd in chart.crds_update.resources:
                result = commands.kubectl.delete_crd(crd)
                if not result.success:
                    console.warn(f"Could not delete CRD {crd}: {result.stderr}")
        commands.helm.uninstall(chart)
        console.ok(f"{chart.name} removed")

    # =========================================================================
    # Best-effort steps
    # =========================================================================

    def _best_effort_delete_crash_looping_pods(
        self, commands: ShellCommands, console: ConsoleLike
    ) -> None:
        chart = self.descriptor
        try:
            deleted = commands.kubectl.delete_crash_looping_pods(
                chart.namespace, chart.k8s_selector or ""
            )
        except Exception as e:
            console.warn(f"Could not clean crash-looping pods of {chart.name}: {e}")
            logger.opt(exception=e).debug("Crash-looping pod cleanup failed")
            return
        if deleted:
            console.info(f"Deleted crash-looping pods: {', '.join(deleted)}")

    def _best_effort_installed_release(
        self, commands: ShellCommands
    ) -> HelmRelease | None:
        try:
            return commands.helm.get_installed_release(self.descriptor)
        except DeploymentError as e:
            logger.warning("Could not list releases for {}: {}", self.name, e.message)
            return None

    def _best_effort_reinstall_uninstall(
        self, commands: ShellCommands, console: ConsoleLike, current: SemanticVersion
    ) -> bool:
        chart = self.descriptor
        console.warn(
            f"{chart.name} {current} is older than "
            f"{chart.reinstall_if_installed_version_below}, reinstalling"
        )
        try:
            commands.helm.uninstall(chart)
        except DeploymentError as e:
            console.warn(f"Could not uninstall {chart.name} before reinstall: {e.message}")
            return False
        return True

    def _best_effort_backup(
        self,
        commands: ShellCommands,
        console: ConsoleLike,
        installed: HelmRelease | None,
    ) -> BackupStatus:
        try:
            return ChartBackupManager(commands.kubectl, console).prepare(
                self.descriptor, installed
            )
        except Exception as e:
            console.warn(f"Could not back up {self.name}: {e}")
            return BackupStatus.NOT_BACKUPABLE

    def _best_effort_backup_restore(
        self, commands: ShellCommands, console: ConsoleLike
    ) -> None:
        try:
            ChartBackupManager(commands.kubectl, console).restore(self.descriptor)
        except Exception as e:
            console.warn(f"Could not restore backup of {self.name}: {e}")

    def _best_effort_backup_discard(
        self, commands: ShellCommands, console: ConsoleLike
    ) -> None:
        try:
            ChartBackupManager(commands.kubectl, console).discard(self.descriptor)
        except Exception as e:
            console.warn(f"Could not discard backup of {self.name}: {e}")

    # =========================================================================
    # Output sinks
    # =========================================================================

    @staticmethod
    def _stdout_sink(name: str) -> Callable[[str], None]:
        def sink(line: str) -> None:
            logger.debug("[{}] {}", name, line)

        return sink

    @staticmethod
    def _stderr_sink(name: str, console: ConsoleLike) -> Callable[[str], None]:
        def sink(line: str) -> None:
            if DEFAULT_CONSTANTS.HELM_DEBUG_MARKER in line:
                logger.debug("[{}] {}", name, line)
            elif line.strip():
                console.print(f"  [dim]{escape(line)}[/dim]")

        return sink
