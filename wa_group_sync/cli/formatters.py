"""CLI output formatting functions.

This module contains functions for displaying sync reports, stored groups
and sync state to the command line.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

import click

if TYPE_CHECKING:
    from wa_group_sync.sync.engine import SyncReport
    from wa_group_sync.sync.group import GroupSyncResult

# Number of groups shown per section before "... and N more"
PREVIEW_LIMIT = 10

STATUS_COLORS = {
    "committed": "green",
    "rejected": "yellow",
    "cooldown": "yellow",
    "cancelled": "yellow",
    "identity_unavailable": "red",
    "configuration_error": "red",
}


def format_timestamp(epoch_seconds: Optional[float]) -> str:
    """Render epoch seconds as local time, or 'Never'."""
    if epoch_seconds is None:
        return "Never"
    return datetime.fromtimestamp(epoch_seconds).strftime("%Y-%m-%d %H:%M:%S")


def mask_token(token: Optional[str]) -> str:
    """Show only the last four characters of a gateway token."""
    if not token:
        return click.style("Not set", fg="red")
    if len(token) <= 4:
        return "****"
    return "****" + token[-4:]


def show_group_table(
    groups: Sequence["GroupSyncResult"], verbose: bool = False
) -> None:
    """
    Display groups as a name/role/members table.

    Args:
        groups: Groups to display
        verbose: Also print each group's gateway id
    """
    click.echo(f"{'Name':<40} {'Role':<10} {'Members':<10}")
    click.echo("-" * 60)

    for group in sorted(groups, key=lambda g: g.name.lower()):
        name = group.name if len(group.name) <= 38 else group.name[:37] + "…"
        click.echo(f"{name:<40} {group.role:<10} {group.participants_count:<10}")

    if verbose:
        click.echo()
        click.echo("Group ids:")
        for group in sorted(groups, key=lambda g: g.name.lower()):
            click.echo(f"  {group.name}: {group.group_id}")


def show_report(report: "SyncReport", verbose: bool = False) -> None:
    """
    Display a sync report.

    Args:
        report: Report returned by the orchestrator
        verbose: Also list the accepted groups
    """
    color = STATUS_COLORS.get(report.status.value, "white")

    click.echo("\n" + "=" * 50)
    click.echo(report.summary())
    click.echo("=" * 50)

    if report.success:
        if report.dry_run:
            click.echo(
                click.style("\nDry run complete. No changes were made.", fg="yellow")
            )
            click.echo("Run without --dry-run to store these groups.")
        else:
            click.echo(click.style("\nSync completed successfully!", fg=color))
    else:
        click.echo(click.style(f"\nSync {report.status.value}.", fg=color))
        if report.existing_count:
            click.echo(f"Stored groups kept: {report.existing_count}")

    if report.had_transient_errors:
        click.echo(
            click.style(
                "Warning: the gateway returned errors during the scan.", fg="yellow"
            )
        )

    if verbose and report.groups:
        click.echo("\n=== Groups Found ===")
        show_group_table(report.groups[:PREVIEW_LIMIT])
        if len(report.groups) > PREVIEW_LIMIT:
            click.echo(f"  ... and {len(report.groups) - PREVIEW_LIMIT} more")


def show_sync_state(state: Optional[dict[str, Any]]) -> None:
    """Display the recorded outcome of the last sync."""
    if not state:
        click.echo("Last sync: Never")
        return

    status = state.get("last_status") or "unknown"
    click.echo(f"Last sync: {format_timestamp(state.get('last_sync_at'))}")
    click.echo(
        "Last outcome: "
        + click.style(status, fg=STATUS_COLORS.get(status, "white"))
    )
    click.echo(f"Groups after last sync: {state.get('last_groups_count') or 0}")
    click.echo(f"API calls: {state.get('last_api_calls') or 0}")
    if state.get("last_message"):
        click.echo(f"Message: {state['last_message']}")
