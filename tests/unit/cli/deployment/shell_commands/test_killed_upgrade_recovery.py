"""Recovery of a release whose upgrade was killed halfway.

A stand-in ``helm`` executable keeps the release revision and status in a
state directory, so the real runner, killer, classifier and lock recovery
are exercised end to end.
"""

import os
import stat
from pathlib import Path

import pytest

from src.cli.deployment.shell_commands.helm import HelmCommands
from src.cli.deployment.shell_commands.killer import AbortReason
from src.cli.deployment.shell_commands.runner import CommandRunner
from src.cli.deployment.shell_commands.types import CommandResult
from src.infra.helm.descriptor import ChartDescriptor
from src.infra.helm.errors import HelmKilledError

FAKE_HELM = """#!/bin/sh
state="$FAKE_HELM_STATE"
echo "$1" >> "$state/calls"
revision=$(cat "$state/revision" 2>/dev/null || echo 0)
case "$1" in
  status)
    if [ "$revision" = 0 ]; then
      echo "Error: release: not found" >&2
      exit 1
    fi
    printf '{"name": "loki", "version": %s, "info": {"status": "%s"}}\\n' \\
      "$revision" "$(cat "$state/status")"
    ;;
  upgrade)
    echo $((revision + 1)) > "$state/revision"
    if [ -f "$state/hang" ]; then
      echo pending-upgrade > "$state/status"
      touch "$state/started"
      echo "upgrading loki"
      exec sleep 30
    fi
    echo deployed > "$state/status"
    echo "Release loki has been upgraded"
    ;;
  rollback)
    echo $((revision + 1)) > "$state/revision"
    echo deployed > "$state/status"
    ;;
  uninstall)
    rm -f "$state/revision" "$state/status"
    ;;
esac
"""


class RecordingRunner(CommandRunner):
    """Runner that keeps every streamed result."""

    def __init__(self) -> None:
        super().__init__()
        self.streamed: list[CommandResult] = []

    def run_streaming(self, cmd, **kwargs) -> CommandResult:
        result = super().run_streaming(cmd, **kwargs)
        self.streamed.append(result)
        return result


@pytest.fixture
def state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    helm = bin_dir / "helm"
    helm.write_text(FAKE_HELM)
    helm.chmod(helm.stat().st_mode | stat.S_IXUSR)

    state_dir = tmp_path / "state"
    state_dir.mkdir()
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ['PATH']}")
    monkeypatch.setenv("FAKE_HELM_STATE", str(state_dir))
    return state_dir


def _calls(state: Path) -> list[str]:
    return (state / "calls").read_text().split()


def test_killed_upgrade_is_rolled_back_before_next_upgrade(
    state: Path, tmp_path: Path
) -> None:
    """Install, kill an upgrade midway, then upgrade again."""
    kubeconfig = tmp_path / "kubeconfig"
    kubeconfig.write_text("apiVersion: v1\n")
    chart_dir = tmp_path / "charts" / "loki"
    chart_dir.mkdir(parents=True)
    chart = ChartDescriptor(name="loki", path=chart_dir, namespace="monitoring")

    runner = RecordingRunner()
    helm = HelmCommands(runner, kubeconfig)

    helm.upgrade(chart)
    assert (state / "revision").read_text().strip() == "1"

    (state / "hang").touch()
    with pytest.raises(HelmKilledError):
        helm.upgrade(chart, is_cancelled=(state / "started").exists)
    assert runner.streamed[-1].abort_reason is AbortReason.CANCELED
    assert (state / "status").read_text().strip() == "pending-upgrade"

    (state / "hang").unlink()
    (state / "calls").unlink()
    helm.upgrade(chart)

    calls = _calls(state)
    assert calls.count("rollback") == 1
    assert calls.count("upgrade") == 1
    assert calls.index("rollback") < calls.index("upgrade")
    assert "uninstall" not in calls
    assert (state / "status").read_text().strip() == "deployed"
