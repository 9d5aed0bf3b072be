"""Tests for post-install checkers."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from src.cli.deployment.helm_deployer.checkers import (
    DeploymentReadyChecker,
    PodsReadyChecker,
)
from src.infra.helm.descriptor import ChartDescriptor
from src.infra.helm.errors import InstallationCheckError
from src.infra.k8s.controller import DeploymentInfo, PodInfo


class FakeClock:
    """Clock advanced by the fake sleep."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def chart() -> ChartDescriptor:
    return ChartDescriptor(
        name="grafana", path=Path("charts/grafana"), namespace="monitoring"
    )


@pytest.fixture
def mock_commands() -> MagicMock:
    """Create a mock ShellCommands."""
    return MagicMock()


class TestPodsReadyChecker:
    """Tests for the pod readiness checker."""

    def test_ready_after_polling(
        self, chart: ChartDescriptor, mock_commands: MagicMock
    ) -> None:
        """The checker polls until every pod is ready."""
        clock = FakeClock()
        mock_commands.kubectl.get_pods.side_effect = [
            [PodInfo("grafana-0", "monitoring", "Pending")],
            [PodInfo("grafana-0", "monitoring", "Running", ready=True)],
        ]
        checker = PodsReadyChecker(
            "app=grafana",
            timeout_seconds=60,
            interval_seconds=5,
            sleep=clock.sleep,
            clock=clock,
        )

        checker.verify(chart, mock_commands)

        assert mock_commands.kubectl.get_pods.call_count == 2
        mock_commands.kubectl.get_pods.assert_called_with("monitoring", "app=grafana")

    def test_completed_job_pods_count_as_ready(
        self, chart: ChartDescriptor, mock_commands: MagicMock
    ) -> None:
        """Pods that ran to completion do not block the check."""
        mock_commands.kubectl.get_pods.return_value = [
            PodInfo("grafana-0", "monitoring", "Running", ready=True),
            PodInfo("grafana-migrate", "monitoring", "Succeeded"),
        ]

        PodsReadyChecker("app=grafana", sleep=MagicMock()).verify(chart, mock_commands)

    def test_no_pods_times_out(
        self, chart: ChartDescriptor, mock_commands: MagicMock
    ) -> None:
        """An empty selector match never counts as ready."""
        clock = FakeClock()
        mock_commands.kubectl.get_pods.return_value = []
        checker = PodsReadyChecker(
            "app=grafana",
            timeout_seconds=20,
            interval_seconds=5,
            sleep=clock.sleep,
            clock=clock,
        )

        with pytest.raises(InstallationCheckError) as excinfo:
            checker.verify(chart, mock_commands)

        assert excinfo.value.chart_name == "grafana"
        assert "not ready after 20s" in excinfo.value.message


class TestDeploymentReadyChecker:
    """Tests for the deployment readiness checker."""

    def test_ready_deployment(
        self, chart: ChartDescriptor, mock_commands: MagicMock
    ) -> None:
        """All replicas ready passes immediately."""
        mock_commands.kubectl.get_deployment.return_value = DeploymentInfo(
            "grafana", 2, 2
        )

        DeploymentReadyChecker("grafana", sleep=MagicMock()).verify(chart, mock_commands)

        mock_commands.kubectl.get_deployment.assert_called_once_with(
            "grafana", "monitoring"
        )

    def test_missing_deployment_times_out(
        self, chart: ChartDescriptor, mock_commands: MagicMock
    ) -> None:
        """A deployment that never appears fails the check."""
        clock = FakeClock()
        mock_commands.kubectl.get_deployment.return_value = None
        checker = DeploymentReadyChecker(
            "grafana",
            timeout_seconds=10,
            interval_seconds=5,
            sleep=clock.sleep,
            clock=clock,
        )

        with pytest.raises(InstallationCheckError):
            checker.verify(chart, mock_commands)
