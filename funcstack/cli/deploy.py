"""
Pulumi CLI wrapper used by ``funcstack preview/up/destroy/outputs``.

The Pulumi program itself is ``infrastructure/__main__.py``; this module
only shells out to the ``pulumi`` binary in that directory.
"""

import json
import subprocess
from pathlib import Path
from typing import Any, Mapping

import click

from funcstack.core.errors import FuncstackError

PROJECT_NAMESPACE = "funcstack"


class DeploymentError(FuncstackError):
    """A pulumi invocation could not be run or exited non-zero."""
    pass


class DeploymentCLI:
    """
    Runs pulumi against the infrastructure project.

    Example:
        deployer = DeploymentCLI()
        deployer.pulumi_up("infrastructure", "dev", yes=True, config={"environment": "dev"})
        deployer.pulumi_stack_output("infrastructure", "dev")["functionAppUrl"]
    """

    def __init__(self, verbose: bool = True):
        """
        Args:
            verbose: Echo each command and its output
        """
        self.verbose = verbose

    def pulumi_preview(
        self,
        pulumi_dir: str | Path,
        stack: str | None = None,
        config: Mapping[str, Any] | None = None,
    ) -> subprocess.CompletedProcess:
        """
        Show what ``up`` would change.

        Args:
            pulumi_dir: Pulumi project directory
            stack: Stack to select, or the current one
            config: Stack options passed as ``--config``

        Raises:
            DeploymentError: If pulumi fails
        """
        return self._run(
            "preview",
            pulumi_dir,
            stack,
            args=config_args(config),
            banner="Previewing the function-app stack",
        )

    def pulumi_up(
        self,
        pulumi_dir: str | Path,
        stack: str | None = None,
        yes: bool = False,
        config: Mapping[str, Any] | None = None,
    ) -> subprocess.CompletedProcess:
        """
        Create or update the stack's resources.

        Args:
            pulumi_dir: Pulumi project directory
            stack: Stack to select, or the current one
            yes: Answer the confirmation prompt
            config: Stack options passed as ``--config``

        Raises:
            DeploymentError: If pulumi fails
        """
        args = ["--yes"] if yes else []
        return self._run(
            "up",
            pulumi_dir,
            stack,
            args=args + config_args(config),
            banner="Deploying the function-app stack",
        )

    def pulumi_destroy(
        self,
        pulumi_dir: str | Path,
        stack: str | None = None,
        yes: bool = False,
    ) -> subprocess.CompletedProcess:
        """Delete every resource of the stack."""
        return self._run(
            "destroy",
            pulumi_dir,
            stack,
            args=["--yes"] if yes else [],
            banner="Destroying the function-app stack",
        )

    def pulumi_stack_output(
        self,
        pulumi_dir: str | Path,
        stack: str | None = None,
    ) -> dict[str, Any]:
        """
        Read the exports of the last deployment.

        Raises:
            DeploymentError: If pulumi fails or prints something other than JSON
        """
        completed = self._run(
            "stack output",
            pulumi_dir,
            stack,
            args=["--json"],
            banner="Reading stack outputs",
            show_output=False,
        )
        try:
            return json.loads(completed.stdout)
        except json.JSONDecodeError as e:
            raise DeploymentError(f"pulumi printed invalid JSON for stack outputs: {e}") from e

    def _run(
        self,
        subcommand: str,
        pulumi_dir: str | Path,
        stack: str | None,
        args: list[str],
        banner: str,
        show_output: bool = True,
    ) -> subprocess.CompletedProcess:
        project = Path(pulumi_dir)
        if not project.exists():
            raise DeploymentError(f"Pulumi directory not found: {pulumi_dir}")

        cmd = ["pulumi", *subcommand.split()]
        if stack:
            cmd += ["--stack", stack]
        cmd += args

        if self.verbose:
            click.echo(f"{banner} ({project})")
            click.echo(f"  $ {' '.join(cmd)}")

        try:
            completed = subprocess.run(
                cmd,
                cwd=project,
                check=True,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            raise DeploymentError("The pulumi CLI was not found on PATH") from e
        except subprocess.CalledProcessError as e:
            detail = f"\n{e.stderr}" if e.stderr else ""
            raise DeploymentError(f"pulumi {subcommand} exited with status {e.returncode}{detail}") from e

        if self.verbose:
            click.echo("✓ Done")
            if show_output and completed.stdout:
                click.echo(completed.stdout)

        return completed


def config_args(config: Mapping[str, Any] | None) -> list[str]:
    """Translate stack options into ``--config`` arguments."""
    args: list[str] = []
    for key, value in (config or {}).items():
        args.extend(["--config", f"{PROJECT_NAMESPACE}:{key}={value}"])
    return args
