# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# src/w3_client/cli.py

"""
w3 Command Line Interface

Thin wrapper around the Client.
"""

from functools import wraps
from pathlib import Path
import json
import re
import sys

import click
import requests

from w3_client import config as config_module
from w3_client import settings as settings_module
from w3_client.client import Client, ClientOptions, W3Error
from w3_client.delegation import DEFAULT_EXPIRATION, import_delegation
from w3_client.service_api import ServiceAPIError
from w3_client.types import AgentMeta


def validate_did(ctx, param, value):
    """Validate that an option value looks like a DID."""
    if value is None:
        return value
    if value.startswith("--"):
        raise click.BadParameter(
            f"'{value}' looks like a flag, not a DID. "
            f"Did you forget to provide a value for --{param.name}?"
        )
    if not re.match(r"^did:[a-z0-9]+:[A-Za-z0-9._:%-]+$", value):
        raise click.BadParameter(f"'{value}' doesn't look like a DID")
    return value


def handle_api_error(func):
    """Decorator to catch API and connection errors."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ServiceAPIError as e:
            click.echo(f"Error: Service error: {e}", err=True)
            sys.exit(1)
        except W3Error as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        except ValueError as e:
            # CAR, delegation, principal, UCAN and path errors
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        except requests.exceptions.ConnectionError as e:
            msg = str(e)
            click.echo("Error: Could not connect to service", err=True)
            match = re.search(r"host='([^']+)'", msg)
            if match:
                click.echo(f"  Host: {match.group(1)}", err=True)
            click.echo("  Check [service] url in config or W3_SERVICE_URL", err=True)
            sys.exit(1)
        except requests.exceptions.RequestException as e:
            click.echo(f"Error: Network error: {e}", err=True)
            sys.exit(1)
    return wrapper


@click.group()
@click.option(
    "--config-file",
    type=click.Path(exists=True, path_type=Path),
    help="Config file path (default: ~/.config/w3/config.toml)",
)
@click.pass_context
def cli(ctx, config_file: Path):
    """w3 storage CLI."""
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file


def _client(ctx) -> Client:
    cfg = config_module.load_config(ctx.obj.get("config_file"))
    return Client(ClientOptions.from_config(cfg))


# =============================================================================
# Identity
# =============================================================================

@cli.command()
@click.pass_context
@handle_api_error
def whoami(ctx) -> None:
    """
    Show the agent DID and ask the service who the account is.
    """
    client = _client(ctx)
    click.echo(f"agent: {client.agent()}")
    result = client.whoami()
    click.echo(f"account: {result}")


@cli.command()
@click.argument("email", required=True)
@click.pass_context
@handle_api_error
def register(ctx, email: str) -> None:
    """
    Register the account with an email address.
    """
    click.echo(_client(ctx).register(email))


@cli.command("check-registration")
@click.pass_context
@handle_api_error
def check_registration(ctx) -> None:
    """
    Check whether the account registration has completed.
    """
    click.echo(_client(ctx).check_registration())


# =============================================================================
# Storage
# =============================================================================

@cli.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path), required=True)
@click.option(
    "--output-json",
    type=click.Path(path_type=Path),
    help="Write full result as JSON to this file",
)
@click.pass_context
@handle_api_error
def upload(ctx, path: Path, output_json: Path) -> None:
    """
    Upload a file or directory.

    Directories and files over 1 MiB are packed as DAG-CBOR nodes, not
    UnixFS, so gateways will not serve them as files or listings.

    Examples:

        w3 upload cat.jpg

        w3 upload photos/ --output-json manifest.json
    """
    client = _client(ctx)
    if path.is_dir():
        result = client.upload_directory(path)
    else:
        result = client.upload_file(path)

    click.echo(f"uploaded {path}")
    click.echo(f"root CID: {result.root_cid}")
    click.echo(f"shard: {result.car_cid} ({result.size} bytes)")

    if output_json:
        with open(output_json, "w") as f:
            f.write(result.to_json())
        click.echo(f"manifest written to: {output_json}")


@cli.command()
@click.pass_context
@handle_api_error
def ls(ctx) -> None:
    """
    List uploads in the current space.
    """
    result = _client(ctx).list()
    click.echo(json.dumps([u.to_dict() for u in result], indent=2))


@cli.command()
@click.argument("cid", required=True)
@click.pass_context
@handle_api_error
def rm(ctx, cid: str) -> None:
    """
    Remove a stored CAR by CID.
    """
    result = _client(ctx).remove(cid)
    click.echo(json.dumps(result, indent=2, default=str))


@cli.command()
@click.argument("root", required=True)
@click.argument("links", nargs=-1, required=True)
@click.pass_context
@handle_api_error
def linkroot(ctx, root: str, links: tuple) -> None:
    """
    Link a root CID to the CAR shards that contain it.
    """
    result = _client(ctx).linkroot(root, list(links))
    click.echo(json.dumps(result, indent=2, default=str))


@cli.command()
@click.argument("cid", required=True)
@click.pass_context
@handle_api_error
def insights(ctx, cid: str) -> None:
    """
    Show insights for a CID.
    """
    click.echo(json.dumps(_client(ctx).insights(cid), indent=2))


# =============================================================================
# Spaces
# =============================================================================

@cli.command()
@click.pass_context
@handle_api_error
def spaces(ctx) -> None:
    """
    List spaces available to this agent.
    """
    client = _client(ctx)
    current = client.current_space()
    for space in client.spaces():
        marker = "*" if current and current.did == space.did else " "
        click.echo(f"{marker} {space.did}  {space.name or ''}")


@cli.command("create-space")
@click.argument("name", required=False)
@click.pass_context
@handle_api_error
def create_space(ctx, name: str) -> None:
    """
    Create a new space and make it current if none is.
    """
    space = _client(ctx).create_space(name)
    click.echo(space.did)


@cli.command("use-space")
@click.argument("did", required=True)
@click.pass_context
@handle_api_error
def use_space(ctx, did: str) -> None:
    """
    Set the current space.
    """
    _client(ctx).set_current_space(did)
    click.echo(f"current space: {did}")


# =============================================================================
# Delegations and settings
# =============================================================================

@cli.command()
@click.option("--to", "audience", required=True, callback=validate_did, help="Audience DID")
@click.option(
    "--can",
    "abilities",
    multiple=True,
    default=("store/*", "upload/*"),
    show_default=True,
    help="Ability to delegate (repeatable)",
)
@click.option(
    "--expiration",
    type=int,
    default=DEFAULT_EXPIRATION,
    show_default=True,
    help="Seconds until the delegation expires",
)
@click.option("--name", default="agent", help="Name of the audience")
@click.option(
    "--type",
    "audience_type",
    type=click.Choice(["device", "app", "service"]),
    default="device",
)
@click.option("--output", type=click.Path(path_type=Path), required=True)
@click.pass_context
@handle_api_error
def delegate(
    ctx,
    audience: str,
    abilities: tuple,
    expiration: int,
    name: str,
    audience_type: str,
    output: Path,
) -> None:
    """
    Delegate abilities on the current space to another agent.

    Example:

        w3 delegate --to did:key:z6Mk... --can store/add --output proof.car
    """
    created = _client(ctx).create_delegation(
        audience,
        list(abilities),
        expiration=expiration,
        audience_meta=AgentMeta(name=name, type=audience_type),
    )
    output.write_bytes(created.archive())
    click.echo(f"delegation {created.cid} written to: {output}")


@cli.command("import-delegation")
@click.argument("path", type=click.Path(exists=True, path_type=Path), required=True)
@click.pass_context
@handle_api_error
def import_delegation_cmd(ctx, path: Path) -> None:
    """
    Import a delegation archive as a space for this agent.
    """
    proof = import_delegation(path.read_bytes())
    space = _client(ctx).add_space(proof)
    click.echo(f"added space {space.did}")


@cli.command("export-settings")
@click.option("--output", type=click.Path(path_type=Path), help="Write to file instead of stdout")
@click.pass_context
@handle_api_error
def export_settings(ctx, output: Path) -> None:
    """
    Print the agent's settings as JSON (contains secrets).
    """
    client = _client(ctx)
    client.identity()
    data = json.dumps(settings_module.export_settings(client.settings), indent=2)
    if output:
        output.write_text(data)
        click.echo(f"settings written to: {output}")
    else:
        click.echo(data)


@cli.command("import-settings")
@click.argument("path", type=click.Path(exists=True, path_type=Path), required=True)
@click.pass_context
@handle_api_error
def import_settings(ctx, path: Path) -> None:
    """
    Replace the agent's settings with an exported settings file.
    """
    cfg = config_module.load_config(ctx.obj.get("config_file"))
    imported = settings_module.import_settings(path.read_text())
    settings_module.SettingsStore(cfg.settings_path).save(imported)
    click.echo(f"imported {len(imported)} settings into {cfg.settings_path}")


@cli.command()
@click.option(
    "--validate-only",
    is_flag=True,
    help="Only validate config, don't display it",
)
@click.pass_context
def config(ctx, validate_only: bool) -> None:
    """
    Display and validate w3 configuration.

    Examples:

        w3 config                    # Display config with validation

        w3 config --validate-only    # Just check for errors
    """
    config_file = ctx.obj.get("config_file")
    try:
        cfg = config_module.load_config(config_file)
    except (FileNotFoundError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    errors, warnings = cfg.validate()

    if not validate_only:
        click.echo(f"Config file: {cfg.config_path}")
        click.echo()
        click.echo("Settings:")
        click.echo(f"  service: {cfg.service.url} ({cfg.service.did})")
        click.echo(f"  access: {cfg.access.url} ({cfg.access.did})")
        click.echo(f"  insights: {cfg.insights_url}")
        click.echo(f"  settings file: {cfg.settings_path}")
        click.echo()

    # Validation results
    if errors:
        click.echo("Errors:", err=True)
        for e in errors:
            click.echo(f"  ✗ {e}", err=True)
    if warnings:
        click.echo("Warnings:")
        for w in warnings:
            click.echo(f"  ⚠ {w}")
    if not errors and not warnings:
        click.echo("✓ Config is valid")

    sys.exit(1 if errors else 0)
