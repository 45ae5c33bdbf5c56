"""
Command-line interface for wa_group_sync.

Provides CLI commands for configuring user profiles, running the group
sync, and inspecting stored groups and sync state.

Usage:
    # Show help
    wa-group-sync --help

    # Register a user's gateway channel
    wa-group-sync set-profile --user alice --token TOKEN --status connected

    # Run synchronization
    wa-group-sync sync --user alice
    wa-group-sync sync --user alice --dry-run --verbose

    # Inspect results
    wa-group-sync status --user alice
    wa-group-sync list-groups --user alice
"""

import json
import sys
from pathlib import Path

import click

from wa_group_sync import __version__
from wa_group_sync.cli.formatters import (
    mask_token,
    show_group_table,
    show_report,
    show_sync_state,
)
from wa_group_sync.config.generator import save_config_file
from wa_group_sync.config.loader import DEFAULT_CONFIG_FILE, ConfigError, ConfigLoader
from wa_group_sync.config.sync_config import SyncConfig
from wa_group_sync.storage.db import SyncDatabase
from wa_group_sync.sync.engine import SyncOrchestrator
from wa_group_sync.utils import resolve_config_dir, resolve_db_path
from wa_group_sync.utils.logging import cleanup_old_logs, get_logger, setup_logging


def get_config_dir(config_dir: str | None) -> Path:
    """Get the configuration directory path."""
    return resolve_config_dir(config_dir)


def get_config_file(config_dir: Path, config_file: str | None) -> Path:
    """Get the configuration file path."""
    if config_file:
        return Path(config_file)
    return config_dir / DEFAULT_CONFIG_FILE


def open_database(ctx: click.Context) -> SyncDatabase:
    """Open (and create if needed) the database in the config directory."""
    config_dir: Path = ctx.obj["config_dir"]
    sync_config: SyncConfig = ctx.obj["sync_config"]

    config_dir.mkdir(parents=True, mode=0o700, exist_ok=True)
    db = SyncDatabase(str(resolve_db_path(config_dir, sync_config.database_file)))
    db.initialize()
    return db


@click.group()
@click.version_option(version=__version__, prog_name="wa-group-sync")
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output with detailed logging."
)
@click.option(
    "--config-dir",
    "-c",
    type=click.Path(exists=False, file_okay=False, dir_okay=True),
    envvar="WA_GROUP_SYNC_CONFIG_DIR",
    help="Configuration directory path (default: ~/.wa-group-sync).",
)
@click.option(
    "--config-file",
    "-f",
    type=click.Path(exists=False, file_okay=True, dir_okay=False),
    envvar="WA_GROUP_SYNC_CONFIG_FILE",
    help="Configuration file path (default: <config-dir>/config.yaml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    config_dir: str | None,
    config_file: str | None,
) -> None:
    """
    WhatsApp admin group sync.

    Scans a user's WhatsApp groups through the gateway, finds the groups the
    user created or administers, and stores them locally. A scan that looks
    truncated by rate limiting never replaces the stored groups.
    """
    ctx.ensure_object(dict)

    resolved_config_dir = get_config_dir(config_dir)
    resolved_config_file = get_config_file(resolved_config_dir, config_file)

    ctx.obj["config_dir"] = resolved_config_dir
    ctx.obj["config_file"] = resolved_config_file

    # Show config errors but keep going with defaults
    config = {}
    sync_config = SyncConfig()
    try:
        loader = ConfigLoader(config_dir=resolved_config_dir)
        config = loader.load_from_file(resolved_config_file)
        if config:
            loader.validate(config)
        sync_config = SyncConfig.from_dict(config)
    except ConfigError as e:
        click.echo(
            click.style(f"Warning: Configuration error: {e}", fg="yellow"), err=True
        )
        config = {}

    ctx.obj["config"] = config
    ctx.obj["sync_config"] = sync_config

    effective_verbose = verbose or config.get("verbose", False)
    ctx.obj["verbose"] = effective_verbose

    log_dir = (
        Path(config["log_dir"]).expanduser()
        if config.get("log_dir")
        else resolved_config_dir / "logs"
    )

    setup_logging(verbose=effective_verbose, log_dir=log_dir, enable_file_logging=True)
    cleanup_old_logs(log_dir=log_dir)


# =============================================================================
# Set-Profile Command
# =============================================================================


@cli.command("set-profile")
@click.option("--user", "-u", "user_id", required=True, help="User identifier.")
@click.option("--token", "-t", help="Gateway channel token.")
@click.option(
    "--status",
    "-s",
    "connection_status",
    help="Channel connection status (sync requires 'connected').",
)
@click.option("--phone", "-p", "phone_number", help="Phone number of the channel.")
@click.option("--instance", "instance_id", help="Gateway channel/instance id.")
@click.pass_context
def set_profile_command(
    ctx: click.Context,
    user_id: str,
    token: str | None,
    connection_status: str | None,
    phone_number: str | None,
    instance_id: str | None,
) -> None:
    """
    Create or update a user's gateway profile.

    Only the options given are changed.

    Examples:

        wa-group-sync set-profile --user alice --token abc123 --status connected

        wa-group-sync set-profile --user alice --phone 0501234567
    """
    logger = get_logger(__name__)

    try:
        db = open_database(ctx)
        db.upsert_profile(
            user_id,
            gateway_token=token,
            connection_status=connection_status,
            phone_number=phone_number,
            instance_id=instance_id,
        )
        click.echo(click.style(f"Profile saved for {user_id}.", fg="green"))
        logger.info(f"Profile updated for {user_id}")

    except Exception as e:
        logger.exception(f"Failed to save profile: {e}")
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)


# =============================================================================
# Sync Command
# =============================================================================


@cli.command("sync")
@click.option("--user", "-u", "user_id", required=True, help="User to sync.")
@click.option(
    "--dry-run", is_flag=True, help="Scan and report without storing anything."
)
@click.option("--force", is_flag=True, help="Ignore the sync cooldown.")
@click.option(
    "--json", "as_json", is_flag=True, help="Print the report as JSON."
)
@click.pass_context
def sync_command(
    ctx: click.Context, user_id: str, dry_run: bool, force: bool, as_json: bool
) -> None:
    """
    Discover and store the groups a user administers.

    Scans the user's groups in several passes, classifies each one by the
    user's role, and replaces the stored groups with the result unless the
    result looks truncated.

    Examples:

        # Preview without storing
        wa-group-sync sync --user alice --dry-run

        # Run again right away
        wa-group-sync sync --user alice --force

        # Machine-readable report
        wa-group-sync sync --user alice --json
    """
    logger = get_logger(__name__)
    verbose = ctx.obj["verbose"]
    sync_config: SyncConfig = ctx.obj["sync_config"]

    try:
        db = open_database(ctx)

        if verbose and not as_json:
            click.echo("\nSync configuration:")
            db_path = resolve_db_path(ctx.obj["config_dir"], sync_config.database_file)
            click.echo(f"  Database: {db_path}")
            click.echo(f"  Gateway: {sync_config.gateway_base_url}")
            click.echo(f"  Passes: {len(sync_config.passes)}")
            click.echo(f"  Protection threshold: {sync_config.protection_threshold}")
            click.echo(f"  Dry run: {dry_run}")

        if not as_json:
            mode = "Scanning" if dry_run else "Synchronizing"
            click.echo(f"\n{mode} groups for {user_id}...")

        orchestrator = SyncOrchestrator(db, config=sync_config)
        report = orchestrator.sync_user(user_id, dry_run=dry_run, force=force)

        if as_json:
            click.echo(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
        else:
            show_report(report, verbose=verbose)

    except Exception as e:
        logger.exception(f"Sync failed: {e}")
        click.echo(click.style(f"\nSync failed: {e}", fg="red"), err=True)
        sys.exit(1)

    if not report.success:
        sys.exit(1)


# =============================================================================
# Status Command
# =============================================================================


@cli.command("status")
@click.option("--user", "-u", "user_id", required=True, help="User to inspect.")
@click.pass_context
def status_command(ctx: click.Context, user_id: str) -> None:
    """
    Show a user's profile and sync status.

    Example:

        wa-group-sync status --user alice
    """
    logger = get_logger(__name__)

    try:
        db = open_database(ctx)
        profile = db.get_profile(user_id)

        click.echo("=== WhatsApp Group Sync Status ===\n")
        click.echo(f"Configuration directory: {ctx.obj['config_dir']}")
        click.echo()

        if profile is None:
            click.echo(click.style(f"No profile found for {user_id}.", fg="red"))
            click.echo(f"Run: wa-group-sync set-profile --user {user_id} --token ...")
            return

        connection_status = profile.get("connection_status") or "unknown"
        status_color = "green" if connection_status == "connected" else "yellow"

        click.echo(f"User: {user_id}")
        click.echo(f"Gateway token: {mask_token(profile.get('gateway_token'))}")
        click.echo(
            f"Connection: {click.style(connection_status, fg=status_color)}"
        )
        click.echo(f"Phone number: {profile.get('phone_number') or 'Not resolved yet'}")
        click.echo(f"Stored groups: {db.count_user_groups(user_id)}")
        click.echo()

        show_sync_state(db.get_sync_state(user_id))

    except Exception as e:
        logger.exception(f"Error getting status: {e}")
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)


# =============================================================================
# Init-Config Command
# =============================================================================


@cli.command("init-config")
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Overwrite existing configuration file if it exists.",
)
@click.pass_context
def init_config_command(ctx: click.Context, force: bool) -> None:
    """
    Generate a default configuration file.

    Creates a configuration file with all available options documented
    and commented out.

    Examples:

        wa-group-sync init-config

        wa-group-sync init-config --force
    """
    logger = get_logger(__name__)
    config_file = ctx.obj["config_file"]

    click.echo(f"Creating configuration file: {config_file}")

    success, error = save_config_file(config_file, overwrite=force)

    if success:
        click.echo(click.style("Configuration file created successfully!", fg="green"))
        click.echo(f"\nLocation: {config_file}")
        logger.info(f"Created configuration file: {config_file}")
    else:
        click.echo(click.style(f"Error: {error}", fg="red"), err=True)
        logger.error(f"Failed to create configuration file: {error}")
        sys.exit(1)


# =============================================================================
# List-Groups Command
# =============================================================================


@cli.command("list-groups")
@click.option("--user", "-u", "user_id", required=True, help="User to list.")
@click.option(
    "--creators-only",
    is_flag=True,
    help="Show only groups the user created.",
)
@click.pass_context
def list_groups_command(ctx: click.Context, user_id: str, creators_only: bool) -> None:
    """
    List the stored groups a user administers.

    Examples:

        wa-group-sync list-groups --user alice

        wa-group-sync list-groups --user alice --creators-only
    """
    logger = get_logger(__name__)
    verbose = ctx.obj["verbose"]

    try:
        db = open_database(ctx)
        groups = db.get_user_groups(user_id)

        if creators_only:
            groups = [g for g in groups if g.is_creator]

        if not groups:
            if creators_only:
                click.echo("No created groups stored.")
            else:
                click.echo("No groups stored.")
                click.echo(f"Run: wa-group-sync sync --user {user_id}")
            return

        show_group_table(groups, verbose=verbose)
        click.echo()
        click.echo(f"Total: {len(groups)} group(s)")

    except Exception as e:
        logger.exception(f"Failed to list groups: {e}")
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)


# =============================================================================
# Reset Command
# =============================================================================


@cli.command("reset")
@click.option("--user", "-u", "user_id", required=True, help="User to reset.")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def reset_command(ctx: click.Context, user_id: str, yes: bool) -> None:
    """
    Delete a user's stored groups and sync state.

    The profile is kept. The next sync starts from an empty group set and
    is not subject to the cooldown.

    Example:

        wa-group-sync reset --user alice
    """
    logger = get_logger(__name__)
    db_path = resolve_db_path(
        ctx.obj["config_dir"], ctx.obj["sync_config"].database_file
    )

    if not db_path.exists():
        click.echo("No sync database found. Nothing to reset.")
        return

    if not yes:
        click.confirm(
            f"This will delete all stored groups for {user_id}.\nContinue?",
            abort=True,
        )

    try:
        db = open_database(ctx)
        removed = db.clear_user_groups(user_id)
        db.clear_sync_state(user_id)
        db.vacuum()

        click.echo(
            click.style(f"Removed {removed} stored group(s) for {user_id}.", fg="green")
        )
        logger.info(f"Reset completed for {user_id}")

    except Exception as e:
        logger.exception(f"Reset failed: {e}")
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)


# =============================================================================
# Health Command
# =============================================================================


@cli.command("health")
def health_command() -> None:
    """
    Check application health status.

    Returns a simple health status indicator. Useful for container
    health checks and monitoring.

    Example:

        wa-group-sync health
    """
    click.echo("healthy")
