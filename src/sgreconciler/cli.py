"""Security group reconciler CLI (sgctl).

Runs the lifecycle hooks by hand against a Cloud Controller, for repairs and
for exercising a deployment end to end.

Usage:
    sgctl rules options.yaml        # Show the rules that would be created
    sgctl provision options.yaml    # Create the instance's security group
    sgctl update options.yaml       # Ensure the security group exists
    sgctl deprovision options.yaml  # Delete the security group
    sgctl multi-az options.yaml     # Evaluate the multi-AZ tenant policy

Configuration is read from the environment (see Config.from_env).
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import click
from azure.core.exceptions import AzureError, HttpResponseError

from .cloud_controller import CloudControllerClient
from .config import Config, ConfigurationError
from .main import setup_logging
from .models import ProvisionOptions
from .options_loader import OptionsLoadError, load_provision_options
from .rules import build_security_group_rules, security_group_name
from .security_groups import SecurityGroupNotCreated, SecurityGroupReconciler
from .tenant_policy import TenantPolicyGate, UnprocessableEntity

T = TypeVar("T")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

options_file_argument = click.argument(
    "options_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)


def _load_options(path: Path) -> ProvisionOptions:
    try:
        return load_provision_options(path)
    except OptionsLoadError as e:
        raise click.ClickException(str(e)) from e


def _build_client(config: Config) -> CloudControllerClient:
    if not config.cloud_controller_url:
        raise click.ClickException("CF_API_URL is required for this command")
    return CloudControllerClient.from_config(config)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, mapping domain and remote errors to CLI errors."""
    try:
        return asyncio.run(coro)
    except (SecurityGroupNotCreated, UnprocessableEntity) as e:
        raise click.ClickException(str(e)) from e
    except HttpResponseError as e:
        raise click.ClickException(
            f"Cloud Controller error ({e.status_code}): {e.message}"
        ) from e
    except AzureError as e:
        raise click.ClickException(f"Cloud Controller error: {e}") from e
    except TimeoutError as e:
        raise click.ClickException("Cloud Controller request timed out") from e


# =============================================================================
# CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="sgctl")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
    help="Log level for JSON logs on stdout",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str) -> None:
    """Security group reconciler CLI (sgctl).

    Creates, verifies and deletes the Cloud Foundry security group of a
    service instance.

    \b
    Quick Start:
        export CF_API_URL=https://api.cf.example.com
        sgctl provision options.yaml
    """
    setup_logging(log_level.upper())
    try:
        ctx.obj = Config.from_env()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


# =============================================================================
# Lifecycle Commands
# =============================================================================


@cli.command()
@options_file_argument
@click.pass_obj
def rules(config: Config, options_file: Path) -> None:
    """Print the rules built from OPTIONS_FILE as JSON. No remote calls."""
    options = _load_options(options_file)
    payload = {
        "name": security_group_name(config.security_group_name_prefix, options.guid),
        "rules": [rule.to_payload() for rule in build_security_group_rules(options)],
    }
    click.echo(json.dumps(payload, indent=2))


@cli.command()
@options_file_argument
@click.pass_obj
def provision(config: Config, options_file: Path) -> None:
    """Create the security group of the instance in OPTIONS_FILE."""
    options = _load_options(options_file)
    reconciler = SecurityGroupReconciler(config, _build_client(config))
    guid = _run(reconciler.post_instance_provision_operations(options))
    if guid is None:
        click.echo("Security group operations are disabled")
        return
    click.secho(f"✓ Created security group {guid}", fg="green")


@cli.command()
@options_file_argument
@click.pass_obj
def update(config: Config, options_file: Path) -> None:
    """Ensure the security group of the instance in OPTIONS_FILE exists."""
    options = _load_options(options_file)
    reconciler = SecurityGroupReconciler(config, _build_client(config))
    guid = _run(reconciler.post_instance_update_operations(options))
    if guid is None:
        click.echo("Security group operations are disabled")
        return
    click.secho(f"✓ Security group {guid} exists", fg="green")


@cli.command()
@options_file_argument
@click.pass_obj
def deprovision(config: Config, options_file: Path) -> None:
    """Delete the security group of the instance in OPTIONS_FILE."""
    options = _load_options(options_file)
    reconciler = SecurityGroupReconciler(config, _build_client(config))
    _run(reconciler.pre_instance_delete_operations(options))
    if not config.features.enable_security_groups_ops:
        click.echo("Security group operations are disabled")
        return
    click.secho("✓ Security group removed", fg="green")


@cli.command("multi-az")
@options_file_argument
@click.pass_obj
def multi_az(config: Config, options_file: Path) -> None:
    """Evaluate the multi-AZ tenant policy for OPTIONS_FILE."""
    options = _load_options(options_file)
    gate = TenantPolicyGate(config, _build_client(config))
    enabled = _run(gate.is_multi_az_deployment_enabled(options))
    click.echo("enabled" if enabled else "disabled")
