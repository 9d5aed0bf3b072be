"""Kr8s-based implementation of KubernetesController.

Uses the kr8s library for native async Kubernetes operations.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import kr8s
from kr8s.asyncio.objects import Deployment, Pod

from .controller import DeploymentInfo, KubernetesController, PodInfo


def _pod_info(pod: Any) -> PodInfo:
    metadata = pod.metadata
    status = pod.status

    restarts = 0
    waiting_reasons: list[str] = []
    container_statuses = status.get("containerStatuses", [])
    for cs in container_statuses:
        restarts += cs.get("restartCount", 0)
        waiting = cs.get("state", {}).get("waiting")
        if waiting and waiting.get("reason"):
            waiting_reasons.append(waiting["reason"])

    return PodInfo(
        name=metadata.get("name", ""),
        namespace=metadata.get("namespace", ""),
        phase=status.get("phase", "Unknown"),
        restarts=restarts,
        waiting_reasons=tuple(waiting_reasons),
        ready=bool(container_statuses)
        and all(cs.get("ready", False) for cs in container_statuses),
    )


class Kr8sController(KubernetesController):
    """Kubernetes controller using kr8s library.

    The kr8s API client is NOT cached because it is tied to the event loop
    that was running when created, and run_sync() creates a new loop on
    each call.
    """

    def __init__(self, kubeconfig: Path | None = None) -> None:
        self._kubeconfig = kubeconfig

    async def _get_api(self) -> Any:  # Returns kr8s._api.Api
        if self._kubeconfig is None:
            return await kr8s.asyncio.api()
        return await kr8s.asyncio.api(kubeconfig=str(self._kubeconfig))

    # =========================================================================
    # Pod Operations
    # =========================================================================

    async def get_pods(
        self, namespace: str, label_selector: str | None = None
    ) -> list[PodInfo]:
        api = await self._get_api()
        result = []
        async for pod in Pod.list(
            namespace=namespace, label_selector=label_selector, api=api
        ):
            result.append(_pod_info(pod))
        return result

    async def delete_pod(self, name: str, namespace: str) -> None:
        api = await self._get_api()
        try:
            pod = await Pod.get(name, namespace=namespace, api=api)
        except kr8s.NotFoundError:
            return
        await pod.delete()

    # =========================================================================
    # Deployment Operations
    # =========================================================================

    async def get_deployment(self, name: str, namespace: str) -> DeploymentInfo | None:
        api = await self._get_api()
        try:
            deployment = await Deployment.get(name, namespace=namespace, api=api)
        except kr8s.NotFoundError:
            return None
        return DeploymentInfo(
            name=name,
            replicas=deployment.spec.get("replicas", 1),
            ready_replicas=deployment.status.get("readyReplicas", 0),
        )
