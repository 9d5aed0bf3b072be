"""Helm command abstractions.

This module provides commands for Helm release management, including
upgrades, rollbacks, uninstallation, and status queries. Every call runs
against an explicit kubeconfig and passes caller credentials to Helm through
the subprocess environment.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.helm.descriptor import ChartDescriptor, ChartValuesGenerated
from src.infra.helm.errors import (
    CannotRollbackError,
    HelmCommand,
    HelmCommandError,
    HelmError,
    HelmKilledError,
    HelmTimeoutError,
    InvalidConfigError,
    ReleaseDoesNotExistError,
    ReleaseLockedError,
    RollbackedError,
)
from src.utils.console_like import ConsoleLike, coalesce_console

from .killer import AbortReason, CommandKiller
from .lock_recovery import ReleaseLockRecovery
from .types import CommandResult, HelmRelease, ReleaseStatus

if TYPE_CHECKING:
    from .runner import CommandRunner, OutputSink


# Substrings checked in order, first match wins
_STDERR_PATTERNS: tuple[tuple[tuple[str, ...], type[HelmError]], ...] = (
    (
        ("another operation (install/upgrade/rollback) is in progress",),
        ReleaseLockedError,
    ),
    (("has been rolled back",), RollbackedError),
    (("timed out waiting", "deadline exceeded"), HelmTimeoutError),
)


def classify_helm_failure(
    chart_name: str,
    command: HelmCommand,
    stderr: str,
    *,
    abort_reason: AbortReason | None = None,
    env_names: Iterable[str] = (),
) -> HelmError:
    """Map a failed Helm invocation onto exactly one error kind.

    An abort decided by the process killer takes precedence over anything
    Helm printed before it was killed.
    """
    if abort_reason is AbortReason.TIMEOUT:
        return HelmTimeoutError(chart_name, command, stderr, env_names)
    if abort_reason is AbortReason.CANCELED:
        return HelmKilledError(chart_name, command, stderr, env_names)

    for needles, error_cls in _STDERR_PATTERNS:
        if any(needle in stderr for needle in needles):
            return error_cls(chart_name, command, stderr, env_names)
    return HelmCommandError(chart_name, command, stderr, env_names)


def is_release_not_found(stderr: str) -> bool:
    """Return True when Helm reports that the release is absent."""
    return DEFAULT_CONSTANTS.RELEASE_NOT_FOUND_MARKER in stderr


def _keep_error_line(line: str) -> bool:
    return DEFAULT_CONSTANTS.HELM_DEBUG_MARKER not in line


class HelmCommands:
    """Helm-related shell commands.

    Provides operations for:
    - Release management (upgrade/install, rollback, uninstall)
    - Status queries (release status, list releases)
    """

    def __init__(
        self,
        runner: CommandRunner,
        kubeconfig: Path,
        envs: Mapping[str, str] | None = None,
        *,
        console: ConsoleLike | None = None,
    ) -> None:
        """Initialize Helm commands.

        Args:
            runner: Command runner for executing shell commands
            kubeconfig: Path to the cluster kubeconfig
            envs: Credential environment variables passed to every call
            console: Sink for user-facing progress messages

        Raises:
            InvalidConfigError: If the kubeconfig file does not exist
        """
        kubeconfig = Path(kubeconfig)
        if not kubeconfig.is_file():
            raise InvalidConfigError(f"kubeconfig '{kubeconfig}' does not exist")

        self._runner = runner
        self._kubeconfig = kubeconfig
        self._envs = dict(envs or {})
        self._console = coalesce_console(console)
        self._lock_recovery = ReleaseLockRecovery(self, self._console)

    @property
    def kubeconfig(self) -> Path:
        return self._kubeconfig

    @property
    def env(self) -> dict[str, str]:
        """Environment passed to Helm: credentials plus the kubeconfig path."""
        return {**self._envs, "KUBECONFIG": str(self._kubeconfig)}

    def _error(
        self,
        error_cls: type[HelmError],
        chart: ChartDescriptor,
        command: HelmCommand,
        stderr: str,
    ) -> HelmError:
        return error_cls(chart.name, command, stderr, self.env.keys())

    # =========================================================================
    # Status Queries
    # =========================================================================

    def status(self, chart: ChartDescriptor) -> ReleaseStatus:
        """Fetch the current revision and status of a release.

        Returns:
            ReleaseStatus; revision 0 and empty status when Helm's JSON
            output cannot be parsed

        Raises:
            ReleaseDoesNotExistError: If Helm reports the release as absent
            HelmCommandError: On any other failure
        """
        cmd = [
            "helm",
            "status",
            chart.name,
            "--kubeconfig",
            str(self._kubeconfig),
            "--namespace",
            chart.namespace,
            "-o",
            "json",
        ]
        result = self._runner.run(cmd, env=self.env)
        if not result.success:
            if is_release_not_found(result.stderr):
                raise self._error(
                    ReleaseDoesNotExistError, chart, HelmCommand.STATUS, result.stderr
                )
            raise self._error(
                HelmCommandError, chart, HelmCommand.STATUS, result.stderr
            )

        try:
            data = json.loads(result.stdout)
            return ReleaseStatus(
                revision=int(data["version"]),
                status=str(data["info"]["status"]),
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Unparseable helm status for {}: {}", chart.name, e)
            return ReleaseStatus(revision=0, status="")

    def list_releases(self, namespace: str | None = None) -> list[HelmRelease] | None:
        """List releases in one namespace, or in all namespaces.

        Args:
            namespace: Namespace to query (None for all namespaces)

        Returns:
            List of HelmRelease objects, or None if Helm's output could not
            be parsed

        Raises:
            HelmCommandError: If the list command fails
        """
        cmd = ["helm", "list", "-a", "--kubeconfig", str(self._kubeconfig)]
        cmd.extend(["-n", namespace] if namespace else ["-A"])
        cmd.extend(["-o", "json"])

        result = self._runner.run(cmd, env=self.env)
        if not result.success:
            raise HelmCommandError(
                namespace or "*", HelmCommand.LIST, result.stderr, self.env.keys()
            )

        try:
            releases_data = json.loads(result.stdout or "[]")
            return [
                HelmRelease(
                    name=r.get("name", ""),
                    namespace=r.get("namespace", ""),
                    revision=int(r.get("revision", 0)),
                    status=r.get("status", ""),
                    chart=r.get("chart", ""),
                    app_version=r.get("app_version", ""),
                )
                for r in releases_data
            ]
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            logger.warning("Unparseable helm list output: {}", e)
            return None

    def get_installed_release(self, chart: ChartDescriptor) -> HelmRelease | None:
        """Return the installed release for ``chart``, if any."""
        for release in self.list_releases(chart.namespace) or []:
            if release.name == chart.name:
                return release
        return None

    # =========================================================================
    # Release Management
    # =========================================================================

    def upgrade(
        self,
        chart: ChartDescriptor,
        *,
        is_cancelled: Callable[[], bool] | None = None,
        on_stdout: OutputSink | None = None,
        on_stderr: OutputSink | None = None,
    ) -> CommandResult:
        """Install or upgrade a release.

        Clears a pending lock left by a killed Helm process first, writes the
        generated values files next to the chart and runs
        ``helm upgrade --install``. Values files are passed in order: the
        chart's own files, generated files, then customer overrides, so that
        customer overrides always win.

        Args:
            chart: Chart to deploy
            is_cancelled: Cancellation predicate polled while Helm runs
            on_stdout: Called with each stdout line
            on_stderr: Called with each stderr line, debug lines included

        Returns:
            CommandResult of the successful upgrade

        Raises:
            HelmError: Classified failure (see classify_helm_failure)
        """
        self._lock_recovery.recover(chart)

        generated = self._write_values_files(
            chart, (*chart.yaml_files_content, *chart.customer_overrides)
        )

        cmd = [
            "helm",
            "upgrade",
            chart.name,
            str(chart.path),
            "--kubeconfig",
            str(self._kubeconfig),
            "--create-namespace",
            "--install",
            "--debug",
            "--timeout",
            f"{chart.timeout_seconds}s",
            "--history-max",
            str(DEFAULT_CONSTANTS.HELM_HISTORY_MAX),
            "--namespace",
            chart.namespace,
        ]
        if chart.atomic:
            cmd.append("--atomic")
        if chart.force_upgrade:
            cmd.append("--force")
        if chart.recreate_pods:
            cmd.append("--recreate-pods")
        if chart.dry_run:
            cmd.append("--dry-run")
        if chart.wait:
            cmd.append("--wait")
        for value in chart.values:
            cmd.extend(["--set", value.as_arg()])
        for value in chart.values_string:
            cmd.extend(["--set-string", value.as_arg()])
        for values_file in (*chart.values_files, *generated):
            cmd.extend(["-f", str(values_file)])

        killer = CommandKiller(
            chart.timeout_seconds + DEFAULT_CONSTANTS.KILL_GRACE_SECONDS,
            is_cancelled,
        )
        result = self._runner.run_streaming(
            cmd,
            env=self.env,
            on_stdout=on_stdout,
            on_stderr=on_stderr,
            keep_stderr_line=_keep_error_line,
            killer=killer,
        )
        if not result.success:
            raise classify_helm_failure(
                chart.name,
                HelmCommand.UPGRADE,
                result.stderr,
                abort_reason=result.abort_reason,
                env_names=self.env.keys(),
            )
        return result

    def rollback(self, chart: ChartDescriptor) -> CommandResult:
        """Roll a release back to its previous revision.

        Raises:
            CannotRollbackError: If the release is at its first revision
            ReleaseDoesNotExistError: If the release does not exist
            HelmError: Classified failure of the rollback command
        """
        status = self.status(chart)
        if status.revision <= 1:
            raise CannotRollbackError(chart.name, status.revision, self.env.keys())

        cmd = [
            "helm",
            "rollback",
            chart.name,
            "--kubeconfig",
            str(self._kubeconfig),
            "--namespace",
            chart.namespace,
            "--timeout",
            f"{chart.timeout_seconds}s",
            "--history-max",
            str(DEFAULT_CONSTANTS.HELM_HISTORY_MAX),
            "--cleanup-on-fail",
            "--force",
            "--wait",
        ]
        result = self._runner.run(cmd, env=self.env)
        if not result.success:
            raise classify_helm_failure(
                chart.name,
                HelmCommand.ROLLBACK,
                result.stderr,
                env_names=self.env.keys(),
            )
        return result

    def uninstall(self, chart: ChartDescriptor) -> CommandResult:
        """Uninstall a release. An absent release counts as success.

        Raises:
            HelmError: Classified failure of the uninstall command
        """
        cmd = [
            "helm",
            "uninstall",
            chart.name,
            "--kubeconfig",
            str(self._kubeconfig),
            "--namespace",
            chart.namespace,
            "--timeout",
            f"{chart.timeout_seconds}s",
            "--wait",
            "--debug",
        ]
        result = self._runner.run(cmd, env=self.env)
        if not result.success:
            if is_release_not_found(result.stderr):
                logger.debug("Release {} not found, nothing to uninstall", chart.name)
                return CommandResult(success=True, stderr=result.stderr)
            raise classify_helm_failure(
                chart.name,
                HelmCommand.UNINSTALL,
                result.stderr,
                env_names=self.env.keys(),
            )
        return result

    # =========================================================================
    # Values Files
    # =========================================================================

    def _write_values_files(
        self, chart: ChartDescriptor, files: Iterable[ChartValuesGenerated]
    ) -> list[Path]:
        paths: list[Path] = []
        for values in files:
            target = Path(chart.path) / values.filename
            try:
                target.write_text(values.yaml_content)
            except OSError as e:
                raise self._error(
                    HelmCommandError,
                    chart,
                    HelmCommand.UPGRADE,
                    f"cannot write values file {target}: {e}",
                ) from e
            paths.append(target)
        return paths
