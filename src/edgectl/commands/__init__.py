"""Subcommand modules for edgectl.

register_commands() imports command modules lazily so ``edgectl --help``
stays fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register command groups and standalone commands on the root group."""
    # --- Groups ---
    from edgectl.commands.network import network
    from edgectl.commands.proxy import proxy
    from edgectl.commands.route import route

    cli.add_command(proxy)
    cli.add_command(network)
    cli.add_command(route)

    # --- Standalone commands ---
    from edgectl.commands.deploy import deploy
    from edgectl.commands.remove import remove
    from edgectl.commands.status import status

    cli.add_command(deploy)
    cli.add_command(remove)
    cli.add_command(status)
