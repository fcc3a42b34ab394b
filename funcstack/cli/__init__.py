"""CLI utilities for funcstack."""

from funcstack.cli.deploy import (
    DeploymentCLI,
    DeploymentError,
    config_args,
)

__all__ = [
    "DeploymentCLI",
    "DeploymentError",
    "config_args",
]
