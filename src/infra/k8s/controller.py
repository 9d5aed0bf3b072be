"""Abstract Kubernetes controller interface.

Defines the contract for the Kubernetes reads and deletes the chart
lifecycle needs outside of Helm itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

# =============================================================================
# Data Types
# =============================================================================


@dataclass
class PodInfo:
    """Information about a Kubernetes pod.

    Attributes:
        name: Pod name
        namespace: Pod namespace
        phase: Pod phase (Pending, Running, Succeeded, ...)
        restarts: Sum of container restart counts
        waiting_reasons: Reasons of containers in a waiting state
        ready: Whether every container reports ready
    """

    name: str
    namespace: str
    phase: str
    restarts: int = 0
    waiting_reasons: tuple[str, ...] = ()
    ready: bool = False

    def is_crash_looping(self, reason: str, restart_threshold: int) -> bool:
        return reason in self.waiting_reasons and self.restarts >= restart_threshold


@dataclass
class DeploymentInfo:
    """Replica counts of a Kubernetes Deployment."""

    name: str
    replicas: int
    ready_replicas: int = 0

    @property
    def is_ready(self) -> bool:
        return self.ready_replicas >= self.replicas


# =============================================================================
# Abstract Controller
# =============================================================================


class KubernetesController(ABC):
    """Abstract base class for Kubernetes operations.

    All methods are async. Use ``run_sync()`` to call from synchronous code.
    """

    @abstractmethod
    async def get_pods(
        self, namespace: str, label_selector: str | None = None
    ) -> list[PodInfo]:
        """List pods in a namespace, optionally filtered by label selector."""
        ...

    @abstractmethod
    async def delete_pod(self, name: str, namespace: str) -> None:
        """Delete a pod."""
        ...

    @abstractmethod
    async def get_deployment(self, name: str, namespace: str) -> DeploymentInfo | None:
        """Get a deployment's replica counts, or None if it does not exist."""
        ...
