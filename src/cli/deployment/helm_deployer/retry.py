"""Fixed-delay retry of Helm upgrades.

Upgrade failures are usually readiness-timing issues on a freshly changed
cluster, so retries use a constant pause rather than exponential backoff.
A cancelled upgrade is never retried.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

from loguru import logger
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from src.infra.helm.descriptor import UpgradeRetry
from src.infra.helm.errors import HelmError, HelmKilledError, InvalidConfigError

T = TypeVar("T")


def is_retryable(error: BaseException) -> bool:
    """Only Helm failures are retried, never cancellations or bad config."""
    if isinstance(error, (HelmKilledError, InvalidConfigError)):
        return False
    return isinstance(error, HelmError)


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Attempt {} failed ({}), retrying in {:.1f}s",
        retry_state.attempt_number,
        error,
        retry_state.next_action.sleep if retry_state.next_action else 0.0,
    )


class RetryPolicy:
    """Run a callable up to ``attempts + 1`` times with a fixed delay.

    Args:
        attempts: Extra attempts after the first one
        delay_seconds: Pause between attempts
        sleep: Sleep function, injectable for tests
    """

    def __init__(
        self,
        attempts: int = 0,
        delay_seconds: float = 0.0,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if attempts < 0 or delay_seconds < 0:
            raise ValueError("attempts and delay_seconds must not be negative")
        self.attempts = attempts
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        retry: UpgradeRetry | None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> RetryPolicy:
        """A missing configuration means exactly one attempt."""
        if retry is None:
            return cls(sleep=sleep)
        return cls(retry.attempts, retry.delay_seconds, sleep=sleep)

    def call(self, fn: Callable[[], T]) -> T:
        """Call ``fn``, retrying retryable failures.

        Raises:
            The last exception when every attempt failed
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.attempts + 1),
            wait=wait_fixed(self.delay_seconds),
            retry=retry_if_exception(is_retryable),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        return retrying(fn)
