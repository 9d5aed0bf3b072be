"""Tests for Helm failure classification."""

import pytest

from src.cli.deployment.shell_commands.helm import classify_helm_failure
from src.cli.deployment.shell_commands.killer import AbortReason
from src.infra.helm.errors import (
    HelmCommand,
    HelmCommandError,
    HelmKilledError,
    HelmTimeoutError,
    ReleaseLockedError,
    RollbackedError,
)

LOCKED = "Error: UPGRADE FAILED: another operation (install/upgrade/rollback) is in progress"
ROLLED_BACK = 'Error: UPGRADE FAILED: release loki failed, and has been rolled back due to atomic being set'
TIMED_OUT = "Error: UPGRADE FAILED: timed out waiting for the condition"


class TestClassifyHelmFailure:
    """Every failure maps onto exactly one error kind."""

    @pytest.mark.parametrize(
        ("stderr", "expected"),
        [
            (LOCKED, ReleaseLockedError),
            (ROLLED_BACK, RollbackedError),
            (TIMED_OUT, HelmTimeoutError),
            ("Error: context deadline exceeded", HelmTimeoutError),
            ("Error: chart requires kubeVersion >=1.25", HelmCommandError),
            ("", HelmCommandError),
        ],
    )
    def test_stderr_patterns(self, stderr: str, expected: type) -> None:
        """Stderr content selects the error kind."""
        error = classify_helm_failure("loki", HelmCommand.UPGRADE, stderr)

        assert type(error) is expected
        assert error.chart_name == "loki"
        assert error.command is HelmCommand.UPGRADE

    def test_locked_wins_over_rolled_back(self) -> None:
        """Patterns are checked in a fixed order."""
        error = classify_helm_failure(
            "loki", HelmCommand.UPGRADE, f"{ROLLED_BACK}\n{LOCKED}"
        )

        assert isinstance(error, ReleaseLockedError)

    def test_rolled_back_wins_over_timeout(self) -> None:
        """An atomic rollback after a timeout is reported as rolled back."""
        error = classify_helm_failure(
            "loki", HelmCommand.UPGRADE, f"{TIMED_OUT}\n{ROLLED_BACK}"
        )

        assert isinstance(error, RollbackedError)

    @pytest.mark.parametrize(
        ("reason", "expected"),
        [(AbortReason.TIMEOUT, HelmTimeoutError), (AbortReason.CANCELED, HelmKilledError)],
    )
    def test_abort_reason_wins(self, reason: AbortReason, expected: type) -> None:
        """A killed process is classified by the abort reason alone."""
        error = classify_helm_failure(
            "loki", HelmCommand.UPGRADE, LOCKED, abort_reason=reason
        )

        assert type(error) is expected

    def test_env_names_rendered_without_values(self) -> None:
        """Environment variable names appear in details, sorted and redacted."""
        error = classify_helm_failure(
            "loki",
            HelmCommand.UNINSTALL,
            "boom",
            env_names=["KUBECONFIG", "AWS_ACCESS_KEY_ID"],
        )

        assert error.details == (
            "env: AWS_ACCESS_KEY_ID=<redacted>, KUBECONFIG=<redacted>\nboom"
        )
        assert error.message == "helm uninstall of 'loki': command failed"
