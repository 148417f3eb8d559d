"""Command: remove a project and its route."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from edgectl.commands._base import EdgeCommand

if TYPE_CHECKING:
    from edgectl.commands._context import AppContext


@click.command(
    cls=EdgeCommand,
    examples="""\
  edgectl remove shop
  edgectl --json remove shop""",
)
@click.argument("name")
@click.pass_obj
def remove(app: AppContext, name: str) -> None:
    """Retract NAME's route, then tear down its container and network."""
    from edgectl.services.orchestrator import DeploymentOrchestrator

    app.emit(DeploymentOrchestrator(app.workspace).remove(name))
