"""Abort conditions for long-running shell commands.

A ``CommandKiller`` is polled by the runner while a command streams output.
It fires on a wall-clock deadline, on a caller-supplied cancellation
predicate, or never.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from enum import Enum


class AbortReason(Enum):
    """Why a running command was killed."""

    TIMEOUT = "timeout"
    CANCELED = "canceled"


class CommandKiller:
    """Decides when a running command must be killed.

    Args:
        timeout_seconds: Kill after this many seconds (None = no deadline)
        is_cancelled: Predicate polled for cancellation requests,
            for example ``threading.Event().is_set``
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        timeout_seconds: float | None = None,
        is_cancelled: Callable[[], bool] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._deadline = (
            clock() + timeout_seconds if timeout_seconds is not None else None
        )
        self._is_cancelled = is_cancelled

    @classmethod
    def never(cls) -> CommandKiller:
        return cls()

    def should_abort(self) -> AbortReason | None:
        # Cancellation wins when both conditions hold at the same poll
        if self._is_cancelled is not None and self._is_cancelled():
            return AbortReason.CANCELED
        if self._deadline is not None and self._clock() >= self._deadline:
            return AbortReason.TIMEOUT
        return None
