from pathlib import Path

from cachetools.func import lru_cache  # type: ignore

from .controller import KubernetesController
from .kr8s_controller import Kr8sController


@lru_cache(maxsize=8)
def get_k8s_controller(kubeconfig: Path | None = None) -> KubernetesController:
    """Return a shared controller per kubeconfig.

    The controller holds no API client, so sharing it across threads and
    event loops is safe.
    """
    return Kr8sController(kubeconfig)
