"""
funcstack CLI - inspect, simulate and deploy the function-app stack.
"""

import json
import logging
import sys
from dataclasses import asdict
from typing import Any

import click
import yaml
from pydantic import ValidationError

from funcstack import __version__
from funcstack.cli.deploy import DeploymentCLI, DeploymentError
from funcstack.config.stack import StackOptions, load_options
from funcstack.core.cell import Cell, CellState
from funcstack.core.errors import CompositionError
from funcstack.core.export import ExportMap
from funcstack.core.stack import Stack
from funcstack.log import configure_logging, redact
from funcstack.program import build_function_stack
from funcstack.providers.memory import InMemoryBackend


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """
    funcstack - provision an Azure function app from a resource graph.

    Inspect the graph, simulate provisioning against an in-memory backend,
    or deploy it with Pulumi.
    """
    configure_logging(logging.DEBUG if verbose else logging.WARNING)


def stack_options(command):
    """Add --config and --set to a command."""
    command = click.option(
        "--set",
        "overrides",
        multiple=True,
        metavar="KEY=VALUE",
        help="Override a stack option (repeatable)",
    )(command)
    command = click.option(
        "--config",
        "config_file",
        type=click.Path(exists=True, dir_okay=False),
        help="Pulumi stack file with options (Pulumi.<stack>.yaml)",
    )(command)
    return command


def _parse_overrides(overrides: tuple[str, ...]) -> dict[str, str]:
    values = {}
    for override in overrides:
        key, sep, value = override.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{override}'", param_hint="--set")
        values[key.strip()] = value
    return values


def _load(config_file: str | None, overrides: tuple[str, ...]) -> StackOptions:
    try:
        return load_options(config_file, _parse_overrides(overrides))
    except (ValidationError, ValueError) as e:
        raise click.ClickException(f"Invalid stack options: {e}") from e


def _compose(options: StackOptions, backend: InMemoryBackend) -> tuple[Stack, ExportMap]:
    stack = Stack(options.environment, backend=backend)
    exports = build_function_stack(stack, options)
    return stack, exports


def _describe_cell(cell: Cell[Any]) -> Any:
    if cell.state is CellState.RESOLVED:
        return cell.get()
    if cell.state is CellState.FAILED:
        return {"error": str(cell.failure)}
    return None


@cli.command()
@stack_options
@click.option("--format", type=click.Choice(["text", "json", "mermaid"]), default="text")
def graph(config_file: str | None, overrides: tuple[str, ...], format: str):
    """
    Show the resource graph.

    Dependencies are derived from the outputs each resource reads.

    Example:
        funcstack graph
        funcstack graph --format mermaid
    """
    options = _load(config_file, overrides)
    stack, exports = _compose(options, InMemoryBackend())

    try:
        order = stack.validate()
    except CompositionError as e:
        raise click.ClickException(str(e)) from e

    dag = stack.graph()

    if format == "json":
        output = {
            "stack": stack.name,
            "execution_order": order,
            "levels": dag.get_execution_levels(),
            "dag": dag.to_dict(),
            "exports": list(exports),
        }
        click.echo(json.dumps(output, indent=2))

    elif format == "mermaid":
        click.echo("```mermaid")
        click.echo("graph TD")
        for node_name, node in dag.nodes.items():
            if not node.dependencies:
                click.echo(f"  {node_name}")
            for dep in node.dependencies:
                click.echo(f"  {dep} --> {node_name}")
        click.echo("```")

    else:
        click.echo(f"\n Stack: {stack.name}")
        click.echo(f"{'=' * 50}")

        click.echo(f"\n Resources: {len(dag.nodes)}")
        for node_name, node in dag.nodes.items():
            deps = f" <- {', '.join(node.dependencies)}" if node.dependencies else ""
            click.echo(f"  - {node_name} ({node.resource.kind.value}){deps}")

        click.echo("\n Creation Levels:")
        for i, level in enumerate(dag.get_execution_levels(), 1):
            click.echo(f"  {i}. {', '.join(level)}")

        click.echo(f"\n Exports: {len(exports)}")
        for name in exports:
            click.echo(f"  - {name}")


@cli.command()
@stack_options
def validate(config_file: str | None, overrides: tuple[str, ...]):
    """
    Validate the stack without provisioning it.

    Checks options and looks for dependency cycles and references to
    undeclared resources.
    """
    options = _load(config_file, overrides)
    stack, _ = _compose(options, InMemoryBackend())

    try:
        order = stack.validate()
    except CompositionError as e:
        click.echo(f"✗ Stack '{stack.name}' is invalid: {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ Stack '{stack.name}' is valid ({len(order)} resources)")


@cli.command()
@stack_options
@click.option("--fail", "fail_nodes", multiple=True, metavar="RESOURCE", help="Make creation of a resource fail")
@click.option("--fail-lookup", is_flag=True, help="Make the storage key lookup fail")
@click.option("--show-secrets", is_flag=True, help="Do not mask account keys in the output")
def simulate(
    config_file: str | None,
    overrides: tuple[str, ...],
    fail_nodes: tuple[str, ...],
    fail_lookup: bool,
    show_secrets: bool,
):
    """
    Provision the stack against an in-memory backend.

    Prints every backend request in issue order, the final state of each
    resource and the export map. Exits non-zero if any export failed.

    Example:
        funcstack simulate --set environment=staging
        funcstack simulate --fail azure-function-plan
    """
    options = _load(config_file, overrides)
    backend = InMemoryBackend(
        failures={name: "simulated failure" for name in fail_nodes},
        lookup_failures={"*": "simulated lookup failure"} if fail_lookup else None,
    )
    stack, exports = _compose(options, backend)

    try:
        stack.provision()
    except CompositionError as e:
        raise click.ClickException(str(e)) from e

    report = {
        "stack": stack.name,
        "requests": [
            {"type": type(call).__name__, **asdict(call)}
            for call in backend.calls
        ],
        "resources": {
            node.name: (
                node.state.value
                if node.failure is None
                else {"state": node.state.value, "error": str(node.failure)}
            )
            for node in stack.resources
        },
        "exports": {name: _describe_cell(cell) for name, cell in exports.items()},
    }
    if not show_secrets:
        report = redact(report)

    click.echo(json.dumps(report, indent=2, default=str))

    if exports.failed():
        sys.exit(1)


@cli.command("options")
@stack_options
def show_options(config_file: str | None, overrides: tuple[str, ...]):
    """Show stack options with defaults applied."""
    options = _load(config_file, overrides)
    click.echo(yaml.safe_dump(options.to_mapping(), sort_keys=False), nl=False)


def deployment_options(command):
    """Add --dir and --stack to a deployment command."""
    command = click.option("--stack", "-s", "stack_name", help="Pulumi stack name")(command)
    command = click.option(
        "--dir",
        "pulumi_dir",
        default="infrastructure",
        show_default=True,
        type=click.Path(file_okay=False),
        help="Directory containing the Pulumi program",
    )(command)
    return command


def _run_deployment(action):
    try:
        return action()
    except DeploymentError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)


@cli.command()
@deployment_options
@click.option("--set", "overrides", multiple=True, metavar="KEY=VALUE", help="Set a stack option")
def preview(pulumi_dir: str, stack_name: str | None, overrides: tuple[str, ...]):
    """Preview infrastructure changes with Pulumi."""
    config = _parse_overrides(overrides)
    deployer = DeploymentCLI()
    _run_deployment(lambda: deployer.pulumi_preview(pulumi_dir, stack_name, config=config))


@cli.command()
@deployment_options
@click.option("--set", "overrides", multiple=True, metavar="KEY=VALUE", help="Set a stack option")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt")
def up(pulumi_dir: str, stack_name: str | None, overrides: tuple[str, ...], yes: bool):
    """Deploy the stack with Pulumi and print its outputs."""
    config = _parse_overrides(overrides)
    deployer = DeploymentCLI()
    _run_deployment(lambda: deployer.pulumi_up(pulumi_dir, stack_name, yes=yes, config=config))
    outputs = _run_deployment(lambda: deployer.pulumi_stack_output(pulumi_dir, stack_name))

    click.echo("Stack outputs:")
    for key, value in outputs.items():
        click.echo(f"  {key}: {value}")


@cli.command()
@deployment_options
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt")
def destroy(pulumi_dir: str, stack_name: str | None, yes: bool):
    """Tear the stack down with Pulumi."""
    deployer = DeploymentCLI()
    _run_deployment(lambda: deployer.pulumi_destroy(pulumi_dir, stack_name, yes=yes))


@cli.command()
@deployment_options
def outputs(pulumi_dir: str, stack_name: str | None):
    """Print the deployed stack's outputs as JSON."""
    deployer = DeploymentCLI(verbose=False)
    values = _run_deployment(lambda: deployer.pulumi_stack_output(pulumi_dir, stack_name))
    click.echo(json.dumps(values, indent=2))


if __name__ == "__main__":
    cli()
