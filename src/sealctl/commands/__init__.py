"""Subcommand modules for sealctl.

register_commands() uses deferred imports so ``sealctl --help`` stays fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all commands on the root CLI group."""
    from sealctl.commands.decrypt import decrypt

    cli.add_command(decrypt)
