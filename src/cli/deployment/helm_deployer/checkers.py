"""Post-install verification of deployed charts.

A checker confirms that what Helm reported as deployed is actually serving.
Checkers raise ``InstallationCheckError`` on failure.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

from src.infra.helm.errors import InstallationCheckError

if TYPE_CHECKING:
    from src.infra.helm.descriptor import ChartDescriptor

    from ..shell_commands import ShellCommands


class InstallationChecker(Protocol):
    def verify(self, chart: ChartDescriptor, commands: ShellCommands) -> None: ...


class _PollingChecker:
    """Polls a readiness predicate until it holds or the deadline passes."""

    def __init__(
        self,
        timeout_seconds: float,
        interval_seconds: float,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds
        self._sleep = sleep
        self._clock = clock

    def _poll(self, is_ready: Callable[[], bool]) -> bool:
        deadline = self._clock() + self.timeout_seconds
        while True:
            if is_ready():
                return True
            if self._clock() >= deadline:
                return False
            self._sleep(self.interval_seconds)


class PodsReadyChecker(_PollingChecker):
    """Every pod matching a selector in the chart namespace is ready."""

    def __init__(
        self,
        label_selector: str,
        *,
        min_pods: int = 1,
        timeout_seconds: float = 120,
        interval_seconds: float = 5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(
            timeout_seconds, interval_seconds, sleep=sleep, clock=clock
        )
        self.label_selector = label_selector
        self.min_pods = min_pods

    def verify(self, chart: ChartDescriptor, commands: ShellCommands) -> None:
        def ready() -> bool:
            pods = commands.kubectl.get_pods(chart.namespace, self.label_selector)
            return len(pods) >= self.min_pods and all(
                pod.ready or pod.phase == "Succeeded" for pod in pods
            )

        if not self._poll(ready):
            raise InstallationCheckError(
                chart.name,
                f"pods '{self.label_selector}' not ready after "
                f"{self.timeout_seconds:.0f}s",
            )


class DeploymentReadyChecker(_PollingChecker):
    """A named Deployment has all its replicas ready."""

    def __init__(
        self,
        deployment_name: str,
        *,
        timeout_seconds: float = 120,
        interval_seconds: float = 5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(
            timeout_seconds, interval_seconds, sleep=sleep, clock=clock
        )
        self.deployment_name = deployment_name

    def verify(self, chart: ChartDescriptor, commands: ShellCommands) -> None:
        def ready() -> bool:
            deployment = commands.kubectl.get_deployment(
                self.deployment_name, chart.namespace
            )
            return deployment is not None and deployment.is_ready

        if not self._poll(ready):
            raise InstallationCheckError(
                chart.name,
                f"deployment '{self.deployment_name}' not ready after "
                f"{self.timeout_seconds:.0f}s",
            )
