"""Kubernetes infrastructure abstraction layer.

Example:
    from src.infra.k8s import get_k8s_controller, run_sync

    controller = get_k8s_controller(Path("~/.kube/config").expanduser())
    pods = run_sync(controller.get_pods("kube-system", "app=coredns"))
"""

from .controller import DeploymentInfo, KubernetesController, PodInfo
from .helpers import get_k8s_controller
from .kr8s_controller import Kr8sController
from .utils import run_sync

__all__ = [
    # Controller classes
    "KubernetesController",
    "Kr8sController",
    # Data classes
    "PodInfo",
    "DeploymentInfo",
    # Utilities
    "get_k8s_controller",
    "run_sync",
]
