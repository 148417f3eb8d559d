"""Command: ecosystem overview."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from edgectl.commands._base import EdgeCommand

if TYPE_CHECKING:
    from edgectl.commands._context import AppContext


@click.command(
    cls=EdgeCommand,
    examples="""\
  edgectl status
  edgectl -v status
  edgectl --json status""",
)
@click.pass_obj
def status(app: AppContext) -> None:
    """Show the proxy and every deployed project."""
    from edgectl.services.orchestrator import DeploymentOrchestrator

    app.emit(DeploymentOrchestrator(app.workspace).status())
