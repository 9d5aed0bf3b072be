"""Recovery of Helm releases left locked by a killed Helm process.

Helm marks a release ``pending-install``/``pending-upgrade``/``pending-rollback``
while it mutates it and refuses any further mutation until that state clears.
When the Helm process is killed mid-flight the lock stays behind. Recovery
clears it by uninstalling a release that never reached a good revision, or by
rolling back to the previous revision otherwise.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger

from src.infra.helm.errors import DeploymentError, ReleaseDoesNotExistError

if TYPE_CHECKING:
    from src.infra.helm.descriptor import ChartDescriptor
    from src.utils.console_like import ConsoleLike

    from .helm import HelmCommands
    from .types import ReleaseStatus


class LockState(Enum):
    HEALTHY = "healthy"
    LOCKED_FIRST_REVISION = "locked-first-revision"
    LOCKED_LATER_REVISION = "locked-later-revision"
    ABSENT_OR_ERROR = "absent-or-error"


def lock_state_of(status: ReleaseStatus) -> LockState:
    if not status.is_locked:
        return LockState.HEALTHY
    if status.revision <= 1:
        return LockState.LOCKED_FIRST_REVISION
    return LockState.LOCKED_LATER_REVISION


class ReleaseLockRecovery:
    """Clears a pending Helm lock before a mutating call.

    Recovery never raises: failures are reported and the caller's mutation
    proceeds, since the lock may have cleared on its own.
    """

    def __init__(self, helm: HelmCommands, console: ConsoleLike) -> None:
        self._helm = helm
        self._console = console

    def assess(self, chart: ChartDescriptor) -> LockState:
        """Probe the release and classify its lock state."""
        try:
            return lock_state_of(self._helm.status(chart))
        except ReleaseDoesNotExistError:
            return LockState.ABSENT_OR_ERROR
        except DeploymentError as e:
            logger.debug("Lock state of {} unknown: {}", chart.name, e.message)
            return LockState.ABSENT_OR_ERROR

    def recover(self, chart: ChartDescriptor) -> LockState:
        """Clear a lock on ``chart`` if there is one.

        Returns:
            The lock state found before recovery
        """
        state = self.assess(chart)
        try:
            if state is LockState.LOCKED_FIRST_REVISION:
                self._console.warn(
                    f"Release {chart.name} is locked at its first revision, uninstalling"
                )
                self._helm.uninstall(chart)
            elif state is LockState.LOCKED_LATER_REVISION:
                self._console.warn(
                    f"Release {chart.name} is locked, rolling back to previous revision"
                )
                self._helm.rollback(chart)
        except DeploymentError as e:
            self._console.warn(f"Could not clear lock on {chart.name}: {e.message}")
            logger.opt(exception=e).debug("Lock recovery of {} failed", chart.name)
        return state
