"""Deployment module for Helm chart provisioning.

The package is organized into subpackages for modularity:
- shell_commands: Abstractions for Helm and kubectl execution
- helm_deployer: Chart lifecycles, plans and the stage sequencer
"""

from .helm_deployer import DeploymentError, LeveledDeploymentSequencer, load_plan

__all__ = ["DeploymentError", "LeveledDeploymentSequencer", "load_plan"]
