"""Kubectl command abstractions.

This module provides the Kubernetes operations a chart lifecycle needs
around Helm: CRD management, diagnostics, resource backups and pod cleanup.
Pod and deployment reads go through the kr8s controller; everything else
runs kubectl against the same kubeconfig and credentials as Helm.
"""

from __future__ import annotations

import base64
import json
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.k8s import get_k8s_controller, run_sync
from src.infra.k8s.controller import DeploymentInfo, KubernetesController, PodInfo

from .types import CommandResult

if TYPE_CHECKING:
    from .runner import CommandRunner


class KubectlCommands:
    """Kubectl-related shell commands.

    Provides operations for:
    - Pod inspection and crash-looping pod cleanup (kr8s)
    - Deployment readiness (kr8s)
    - CRD apply, wait and delete
    - Namespace events
    - Secrets and manifests used for resource backups
    """

    def __init__(
        self,
        runner: CommandRunner,
        kubeconfig: Path,
        envs: Mapping[str, str] | None = None,
        *,
        controller: KubernetesController | None = None,
    ) -> None:
        """Initialize kubectl commands.

        Args:
            runner: Command runner for executing shell commands
            kubeconfig: Path to the cluster kubeconfig
            envs: Credential environment variables passed to every call
            controller: Kubernetes API controller (kr8s by default)
        """
        self._runner = runner
        self._kubeconfig = Path(kubeconfig)
        self._envs = dict(envs or {})
        self._controller = controller or get_k8s_controller(self._kubeconfig)

    @property
    def env(self) -> dict[str, str]:
        return {**self._envs, "KUBECONFIG": str(self._kubeconfig)}

    def _kubectl(self, *args: str) -> CommandResult:
        cmd = ["kubectl", "--kubeconfig", str(self._kubeconfig), *args]
        return self._runner.run(cmd, env=self.env)

    # =========================================================================
    # Pods and Deployments
    # =========================================================================

    def get_pods(self, namespace: str, label_selector: str | None = None) -> list[PodInfo]:
        """List pods in a namespace, optionally filtered by label selector."""
        return run_sync(self._controller.get_pods(namespace, label_selector))

    def get_deployment(self, name: str, namespace: str) -> DeploymentInfo | None:
        """Get a deployment's replica counts, or None if it does not exist."""
        return run_sync(self._controller.get_deployment(name, namespace))

    def delete_crash_looping_pods(
        self, namespace: str, label_selector: str
    ) -> list[str]:
        """Delete pods stuck in CrashLoopBackOff after repeated restarts.

        Returns:
            Names of the deleted pods
        """
        deleted: list[str] = []
        for pod in self.get_pods(namespace, label_selector):
            if pod.is_crash_looping(
                DEFAULT_CONSTANTS.CRASH_LOOP_REASON,
                DEFAULT_CONSTANTS.CRASH_LOOP_RESTART_THRESHOLD,
            ):
                logger.debug("Deleting crash-looping pod {}/{}", namespace, pod.name)
                run_sync(self._controller.delete_pod(pod.name, namespace))
                deleted.append(pod.name)
        return deleted

    # =========================================================================
    # CRDs
    # =========================================================================

    def apply_crds(self, path: Path, field_manager: str) -> CommandResult:
        """Force-apply CRD manifests server-side, taking field ownership."""
        return self._kubectl(
            "apply",
            "--server-side",
            "--force-conflicts",
            "--field-manager",
            field_manager,
            "-f",
            str(path),
        )

    def wait_crd_established(
        self, crd_name: str, timeout: str = DEFAULT_CONSTANTS.CRD_ESTABLISHED_TIMEOUT
    ) -> CommandResult:
        """Wait until a CRD is accepted by the API server."""
        return self._kubectl(
            "wait",
            "--for",
            "condition=established",
            f"crd/{crd_name}",
            "--timeout",
            timeout,
        )

    def delete_crd(self, crd_name: str) -> CommandResult:
        return self._kubectl("delete", "crd", crd_name, "--ignore-not-found")

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def get_events(self, namespace: str) -> CommandResult:
        """Get namespace events, oldest first."""
        return self._kubectl(
            "get", "events", "-n", namespace, "--sort-by=.lastTimestamp"
        )

    # =========================================================================
    # Manifests and Secrets
    # =========================================================================

    def get_resources_yaml(self, kind: str, namespace: str) -> CommandResult:
        """Dump every resource of ``kind`` in a namespace as YAML."""
        return self._kubectl("get", kind, "-n", namespace, "-o", "yaml")

    def apply_file(self, path: Path, namespace: str) -> CommandResult:
        return self._kubectl("apply", "-n", namespace, "-f", str(path))

    def create_secret_from_file(
        self,
        name: str,
        namespace: str,
        key: str,
        path: Path,
        labels: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Create a generic secret holding one file, then label it."""
        result = self._kubectl(
            "create", "secret", "generic", name, "-n", namespace, f"--from-file={key}={path}"
        )
        if not result.success or not labels:
            return result
        return self._kubectl(
            "label",
            "secret",
            name,
            "-n",
            namespace,
            "--overwrite",
            *(f"{label}={value}" for label, value in labels.items()),
        )

    def list_secret_names(self, namespace: str, label_selector: str) -> list[str]:
        result = self._kubectl(
            "get", "secrets", "-n", namespace, "-l", label_selector, "-o", "json"
        )
        if not result.success or not result.stdout:
            return []
        try:
            items = json.loads(result.stdout).get("items", [])
        except json.JSONDecodeError:
            return []
        return [item["metadata"]["name"] for item in items]

    def get_secret_value(self, name: str, namespace: str, key: str) -> str | None:
        """Return the decoded value of one secret key, or None."""
        result = self._kubectl(
            "get", "secret", name, "-n", namespace, "-o", f"jsonpath={{.data.{key}}}"
        )
        if not result.success or not result.stdout:
            return None
        return base64.b64decode(result.stdout).decode()

    def delete_secret(self, name: str, namespace: str) -> CommandResult:
        return self._kubectl(
            "delete", "secret", name, "-n", namespace, "--ignore-not-found"
        )
