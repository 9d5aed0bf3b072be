"""Resource backups taken around a Helm upgrade.

Some charts own resources whose live state must survive an upgrade (for
example generated certificates). Before upgrading, every resource of the
designated kinds is dumped to YAML and stored in a labelled secret. After a
successful upgrade the snapshot is re-applied and the secret deleted; after a
failed upgrade the unused secret is simply deleted.

Every step is best-effort: a failure degrades the chart to "not backupable"
and never blocks the upgrade.
"""

from __future__ import annotations

import tempfile
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import yaml
from loguru import logger

from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.helm.versions import SemanticVersion

if TYPE_CHECKING:
    from src.infra.helm.descriptor import ChartDescriptor
    from src.utils.console_like import ConsoleLike

    from ..shell_commands import KubectlCommands
    from ..shell_commands.types import HelmRelease

_BACKUP_KEY = "manifest"


class BackupStatus(Enum):
    BACKED_UP = "backed-up"
    NOTHING_TO_BACKUP = "nothing-to-backup"
    NOT_BACKUPABLE = "not-backupable"


def backup_secret_name(chart_name: str, kind: str) -> str:
    return f"{chart_name}-{kind.lower()}-{DEFAULT_CONSTANTS.BACKUP_SECRET_SUFFIX}"


def read_chart_version(chart_path: Path) -> SemanticVersion | None:
    """Read ``version`` from a local chart's ``Chart.yaml``."""
    chart_file = Path(chart_path) / "Chart.yaml"
    try:
        metadata = yaml.safe_load(chart_file.read_text()) or {}
    except (OSError, yaml.YAMLError):
        return None
    return SemanticVersion.parse(str(metadata.get("version", "")))


class ChartBackupManager:
    """Snapshot, restore and discard resource backups of one chart."""

    def __init__(self, kubectl: KubectlCommands, console: ConsoleLike) -> None:
        self._kubectl = kubectl
        self._console = console

    def _selector(self, chart: ChartDescriptor) -> str:
        return f"{DEFAULT_CONSTANTS.BACKUP_LABEL}={chart.name}"

    def prepare(
        self, chart: ChartDescriptor, installed: HelmRelease | None
    ) -> BackupStatus:
        """Store a snapshot of ``chart.backup_resources`` in secrets.

        Nothing is stored when the chart is not installed yet or when the
        target chart is older than the installed one (a downgrade must not
        restore newer state).
        """
        if not chart.backup_resources or installed is None:
            return BackupStatus.NOTHING_TO_BACKUP

        target = read_chart_version(chart.path)
        current = installed.chart_version
        if target is None or current is None or target < current:
            logger.debug(
                "Skipping backup of {}: target {} vs installed {}",
                chart.name,
                target,
                current,
            )
            return BackupStatus.NOT_BACKUPABLE

        try:
            with tempfile.TemporaryDirectory(prefix="chart-backup-") as tmp:
                for kind in chart.backup_resources:
                    if not self._backup_kind(chart, kind, Path(tmp)):
                        self.discard(chart)
                        return BackupStatus.NOT_BACKUPABLE
        except OSError as e:
            self._console.warn(f"Could not back up {chart.name}: {e}")
            self.discard(chart)
            return BackupStatus.NOT_BACKUPABLE
        return BackupStatus.BACKED_UP

    def _backup_kind(self, chart: ChartDescriptor, kind: str, tmp: Path) -> bool:
        dump = self._kubectl.get_resources_yaml(kind, chart.namespace)
        if not dump.success:
            self._console.warn(f"Could not read {kind} of {chart.name}: {dump.stderr}")
            return False

        name = backup_secret_name(chart.name, kind)
        manifest = tmp / f"{name}.yaml"
        manifest.write_text(dump.stdout)

        # A stale backup from an interrupted run would make create fail
        self._kubectl.delete_secret(name, chart.namespace)
        created = self._kubectl.create_secret_from_file(
            name,
            chart.namespace,
            _BACKUP_KEY,
            manifest,
            labels={DEFAULT_CONSTANTS.BACKUP_LABEL: chart.name},
        )
        if not created.success:
            self._console.warn(f"Could not store backup {name}: {created.stderr}")
            return False
        return True

    def restore(self, chart: ChartDescriptor) -> None:
        """Re-apply every stored snapshot, then delete its secret."""
        for name in self._kubectl.list_secret_names(
            chart.namespace, self._selector(chart)
        ):
            try:
                manifest = self._kubectl.get_secret_value(
                    name, chart.namespace, _BACKUP_KEY
                )
                if manifest is None:
                    continue
                with tempfile.TemporaryDirectory(prefix="chart-restore-") as tmp:
                    path = Path(tmp) / f"{name}.yaml"
                    path.write_text(manifest)
                    applied = self._kubectl.apply_file(path, chart.namespace)
                if not applied.success:
                    self._console.warn(
                        f"Could not restore backup {name}: {applied.stderr}"
                    )
                    continue
            except (OSError, ValueError) as e:
                self._console.warn(f"Could not restore backup {name}: {e}")
                continue
            self._kubectl.delete_secret(name, chart.namespace)

    def discard(self, chart: ChartDescriptor) -> None:
        """Delete every stored snapshot of ``chart``."""
        for name in self._kubectl.list_secret_names(
            chart.namespace, self._selector(chart)
        ):
            result = self._kubectl.delete_secret(name, chart.namespace)
            if not result.success:
                logger.warning("Could not delete backup {}: {}", name, result.stderr)
