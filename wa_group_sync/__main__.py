"""
Entry point for running wa_group_sync as a module.

Usage:
    python -m wa_group_sync --help
    python -m wa_group_sync set-profile --user u1 --token abc --status connected
    python -m wa_group_sync sync --user u1 --dry-run
"""

from wa_group_sync.cli import cli

if __name__ == "__main__":
    cli()
