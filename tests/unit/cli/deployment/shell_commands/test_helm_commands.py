"""Tests for Helm status, upgrade, rollback and uninstall commands."""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from src.cli.deployment.shell_commands.helm import HelmCommands
from src.cli.deployment.shell_commands.killer import AbortReason
from src.cli.deployment.shell_commands.types import CommandResult
from src.infra.helm.descriptor import (
    ChartDescriptor,
    ChartSetValue,
    ChartValuesGenerated,
)
from src.infra.helm.errors import (
    CannotRollbackError,
    HelmCommandError,
    HelmKilledError,
    HelmTimeoutError,
    InvalidConfigError,
    ReleaseDoesNotExistError,
    ReleaseLockedError,
)


def _status_json(revision: int, status: str) -> str:
    return json.dumps({"name": "loki", "version": revision, "info": {"status": status}})


@pytest.fixture
def kubeconfig(tmp_path: Path) -> Path:
    path = tmp_path / "kubeconfig"
    path.write_text("apiVersion: v1\nkind: Config\n")
    return path


@pytest.fixture
def chart_dir(tmp_path: Path) -> Path:
    path = tmp_path / "charts" / "loki"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def mock_runner() -> MagicMock:
    """Create a mock command runner."""
    return MagicMock()


@pytest.fixture
def helm_commands(mock_runner: MagicMock, kubeconfig: Path) -> HelmCommands:
    """Create HelmCommands instance with mock runner."""
    return HelmCommands(
        mock_runner,
        kubeconfig,
        {"AWS_SECRET_ACCESS_KEY": "s3cr3t"},
        console=MagicMock(),
    )


@pytest.fixture
def chart(chart_dir: Path) -> ChartDescriptor:
    return ChartDescriptor(
        name="loki", path=chart_dir, namespace="monitoring", timeout_seconds=300
    )


class TestHelmCommandsInit:
    """Tests for HelmCommands construction."""

    def test_missing_kubeconfig_is_invalid_config(self, tmp_path: Path) -> None:
        """A kubeconfig path that is not a file should be rejected up front."""
        with pytest.raises(InvalidConfigError) as excinfo:
            HelmCommands(MagicMock(), tmp_path / "missing")

        assert "missing" in excinfo.value.message

    def test_env_contains_credentials_and_kubeconfig(
        self, helm_commands: HelmCommands, kubeconfig: Path
    ) -> None:
        """Every Helm call should receive the credentials plus KUBECONFIG."""
        assert helm_commands.env == {
            "AWS_SECRET_ACCESS_KEY": "s3cr3t",
            "KUBECONFIG": str(kubeconfig),
        }


class TestHelmStatus:
    """Tests for helm status."""

    def test_status_parses_revision_and_status(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        chart: ChartDescriptor,
        kubeconfig: Path,
    ) -> None:
        """Status should return the revision and status from Helm's JSON."""
        mock_runner.run.return_value = CommandResult(
            success=True, stdout=_status_json(4, "deployed")
        )

        status = helm_commands.status(chart)

        assert status.revision == 4
        assert status.status == "deployed"
        assert not status.is_locked
        cmd = mock_runner.run.call_args[0][0]
        assert cmd == [
            "helm",
            "status",
            "loki",
            "--kubeconfig",
            str(kubeconfig),
            "--namespace",
            "monitoring",
            "-o",
            "json",
        ]

    def test_status_not_found(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        chart: ChartDescriptor,
    ) -> None:
        """A 'release: not found' stderr should raise ReleaseDoesNotExistError."""
        mock_runner.run.return_value = CommandResult(
            success=False, stderr="Error: release: not found", returncode=1
        )

        with pytest.raises(ReleaseDoesNotExistError):
            helm_commands.status(chart)

    def test_status_other_failure(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        chart: ChartDescriptor,
    ) -> None:
        """Any other failure should raise HelmCommandError."""
        mock_runner.run.return_value = CommandResult(
            success=False, stderr="Error: Kubernetes cluster unreachable", returncode=1
        )

        with pytest.raises(HelmCommandError):
            helm_commands.status(chart)

    def test_status_unparseable_output(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        chart: ChartDescriptor,
    ) -> None:
        """Garbage output should yield a zero-value status rather than fail."""
        mock_runner.run.return_value = CommandResult(success=True, stdout="not json")

        status = helm_commands.status(chart)

        assert status.revision == 0
        assert status.status == ""


class TestHelmList:
    """Tests for helm list."""

    def test_list_all_namespaces(
        self, helm_commands: HelmCommands, mock_runner: MagicMock
    ) -> None:
        """Without a namespace, releases from every namespace are listed."""
        mock_runner.run.return_value = CommandResult(
            success=True,
            stdout=json.dumps(
                [
                    {
                        "name": "loki",
                        "namespace": "monitoring",
                        "revision": "3",
                        "status": "deployed",
                        "chart": "loki-v3.4.5",
                        "app_version": "3.4.5",
                    }
                ]
            ),
        )

        releases = helm_commands.list_releases()

        assert releases is not None
        assert releases[0].name == "loki"
        assert releases[0].revision == 3
        assert str(releases[0].chart_version) == "3.4.5"
        cmd = mock_runner.run.call_args[0][0]
        assert "-A" in cmd
        assert "-n" not in cmd

    def test_list_single_namespace(
        self, helm_commands: HelmCommands, mock_runner: MagicMock
    ) -> None:
        """A namespace restricts the listing."""
        mock_runner.run.return_value = CommandResult(success=True, stdout="[]")

        assert helm_commands.list_releases("monitoring") == []
        cmd = mock_runner.run.call_args[0][0]
        assert cmd[cmd.index("-n") + 1] == "monitoring"

    def test_list_unparseable_output(
        self, helm_commands: HelmCommands, mock_runner: MagicMock
    ) -> None:
        """Unparseable output yields None."""
        mock_runner.run.return_value = CommandResult(success=True, stdout="{oops")

        assert helm_commands.list_releases() is None


class TestHelmUpgrade:
    """Tests for helm upgrade --install."""

    def test_upgrade_argument_order(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        chart_dir: Path,
        kubeconfig: Path,
        tmp_path: Path,
    ) -> None:
        """Arguments follow a fixed order with customer overrides last."""
        base_values = tmp_path / "base.yaml"
        chart = ChartDescriptor(
            name="loki",
            path=chart_dir,
            namespace="monitoring",
            timeout_seconds=300,
            force_upgrade=True,
            values=(ChartSetValue("replicas", "2"),),
            values_string=(ChartSetValue("tag", "1.0"),),
            values_files=(base_values,),
            yaml_files_content=(ChartValuesGenerated.for_chart("loki", "a: 1\n"),),
            customer_overrides=(ChartValuesGenerated("loki_customer.yaml", "b: 2\n"),),
        )
        mock_runner.run.return_value = CommandResult(
            success=False, stderr="Error: release: not found", returncode=1
        )
        mock_runner.run_streaming.return_value = CommandResult(success=True)

        helm_commands.upgrade(chart)

        cmd = mock_runner.run_streaming.call_args[0][0]
        assert cmd == [
            "helm",
            "upgrade",
            "loki",
            str(chart_dir),
            "--kubeconfig",
            str(kubeconfig),
            "--create-namespace",
            "--install",
            "--debug",
            "--timeout",
            "300s",
            "--history-max",
            "50",
            "--namespace",
            "monitoring",
            "--atomic",
            "--force",
            "--wait",
            "--set",
            "replicas=2",
            "--set-string",
            "tag=1.0",
            "-f",
            str(base_values),
            "-f",
            str(chart_dir / "loki_override.yaml"),
            "-f",
            str(chart_dir / "loki_customer.yaml"),
        ]
        assert (chart_dir / "loki_override.yaml").read_text() == "a: 1\n"
        assert (chart_dir / "loki_customer.yaml").read_text() == "b: 2\n"

    def test_unwritable_values_file_is_a_helm_error(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        tmp_path: Path,
    ) -> None:
        """A chart directory that vanished surfaces as a typed upgrade failure."""
        mock_runner.run.return_value = CommandResult(
            success=False, stderr="Error: release: not found"
        )
        chart = ChartDescriptor(
            name="loki",
            path=tmp_path / "missing" / "loki",
            namespace="monitoring",
            yaml_files_content=(ChartValuesGenerated("loki_override.yaml", "a: 1\n"),),
        )

        with pytest.raises(HelmCommandError) as excinfo:
            helm_commands.upgrade(chart)

        assert excinfo.value.chart_name == "loki"
        assert "loki_override.yaml" in excinfo.value.stderr
        mock_runner.run_streaming.assert_not_called()

    def test_upgrade_recovers_lock_first(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        chart: ChartDescriptor,
    ) -> None:
        """A release pending at revision 3 is rolled back before upgrading."""
        mock_runner.run.side_effect = [
            CommandResult(success=True, stdout=_status_json(3, "pending-upgrade")),
            CommandResult(success=True, stdout=_status_json(3, "pending-upgrade")),
            CommandResult(success=True),
        ]
        mock_runner.run_streaming.return_value = CommandResult(success=True)

        helm_commands.upgrade(chart)

        commands = [call[0][0][1] for call in mock_runner.run.call_args_list]
        assert commands == ["status", "status", "rollback"]
        mock_runner.run_streaming.assert_called_once()

    def test_upgrade_classifies_locked_failure(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        chart: ChartDescriptor,
    ) -> None:
        """An in-progress operation on the release raises ReleaseLockedError."""
        mock_runner.run.return_value = CommandResult(
            success=True, stdout=_status_json(2, "deployed")
        )
        mock_runner.run_streaming.return_value = CommandResult(
            success=False,
            stderr="Error: UPGRADE FAILED: another operation "
            "(install/upgrade/rollback) is in progress",
            returncode=1,
        )

        with pytest.raises(ReleaseLockedError) as excinfo:
            helm_commands.upgrade(chart)

        assert "AWS_SECRET_ACCESS_KEY=<redacted>" in (excinfo.value.details or "")
        assert "s3cr3t" not in (excinfo.value.details or "")

    def test_upgrade_abort_reason_wins_over_stderr(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        chart: ChartDescriptor,
    ) -> None:
        """A killed upgrade is classified by why it was killed."""
        mock_runner.run.return_value = CommandResult(
            success=True, stdout=_status_json(2, "deployed")
        )
        mock_runner.run_streaming.return_value = CommandResult(
            success=False,
            stderr="another operation (install/upgrade/rollback) is in progress",
            returncode=-9,
            abort_reason=AbortReason.CANCELED,
        )

        with pytest.raises(HelmKilledError):
            helm_commands.upgrade(chart)

    def test_upgrade_killer_has_grace_period(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        chart: ChartDescriptor,
    ) -> None:
        """The streaming call gets a killer and a stderr filter."""
        mock_runner.run.return_value = CommandResult(
            success=True, stdout=_status_json(2, "deployed")
        )
        mock_runner.run_streaming.return_value = CommandResult(success=True)

        helm_commands.upgrade(chart)

        kwargs = mock_runner.run_streaming.call_args.kwargs
        assert kwargs["killer"] is not None
        keep = kwargs["keep_stderr_line"]
        assert keep("Error: something broke")
        assert not keep("upgrade.go:123: 2024 [debug] preparing upgrade")


class TestHelmRollback:
    """Tests for Helm rollback command."""

    def test_rollback_at_first_revision(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        chart: ChartDescriptor,
    ) -> None:
        """There is nothing to roll back to at revision 1."""
        mock_runner.run.return_value = CommandResult(
            success=True, stdout=_status_json(1, "failed")
        )

        with pytest.raises(CannotRollbackError) as excinfo:
            helm_commands.rollback(chart)

        assert excinfo.value.revision == 1
        mock_runner.run.assert_called_once()

    def test_rollback_to_previous_revision(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        chart: ChartDescriptor,
        kubeconfig: Path,
    ) -> None:
        """Rollback should target the previous revision with cleanup flags."""
        mock_runner.run.side_effect = [
            CommandResult(success=True, stdout=_status_json(5, "failed")),
            CommandResult(success=True, stdout="Rollback was a success!"),
        ]

        result = helm_commands.rollback(chart)

        assert result.success
        cmd = mock_runner.run.call_args[0][0]
        assert cmd == [
            "helm",
            "rollback",
            "loki",
            "--kubeconfig",
            str(kubeconfig),
            "--namespace",
            "monitoring",
            "--timeout",
            "300s",
            "--history-max",
            "50",
            "--cleanup-on-fail",
            "--force",
            "--wait",
        ]

    def test_rollback_of_absent_release(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        chart: ChartDescriptor,
    ) -> None:
        """Rolling back a missing release raises ReleaseDoesNotExistError."""
        mock_runner.run.return_value = CommandResult(
            success=False, stderr="Error: release: not found", returncode=1
        )

        with pytest.raises(ReleaseDoesNotExistError):
            helm_commands.rollback(chart)


class TestHelmUninstall:
    """Tests for helm uninstall."""

    def test_uninstall_command(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        chart: ChartDescriptor,
        kubeconfig: Path,
    ) -> None:
        """Uninstall waits for resources to be gone."""
        mock_runner.run.return_value = CommandResult(success=True)

        assert helm_commands.uninstall(chart).success
        cmd = mock_runner.run.call_args[0][0]
        assert cmd == [
            "helm",
            "uninstall",
            "loki",
            "--kubeconfig",
            str(kubeconfig),
            "--namespace",
            "monitoring",
            "--timeout",
            "300s",
            "--wait",
            "--debug",
        ]

    def test_uninstall_absent_release_is_success(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        chart: ChartDescriptor,
    ) -> None:
        """Uninstalling a release that does not exist is a no-op."""
        mock_runner.run.return_value = CommandResult(
            success=False,
            stderr='Error: uninstall: Release not loaded: loki: release: not found',
            returncode=1,
        )

        assert helm_commands.uninstall(chart).success

    def test_uninstall_timeout(
        self,
        helm_commands: HelmCommands,
        mock_runner: MagicMock,
        chart: ChartDescriptor,
    ) -> None:
        """A Helm-side timeout is classified as HelmTimeoutError."""
        mock_runner.run.return_value = CommandResult(
            success=False, stderr="Error: timed out waiting for the condition", returncode=1
        )

        with pytest.raises(HelmTimeoutError):
            helm_commands.uninstall(chart)
