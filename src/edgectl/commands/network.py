"""Command group: network topology."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from edgectl.commands._base import EdgeGroup

if TYPE_CHECKING:
    from edgectl.commands._context import AppContext


@click.group(
    cls=EdgeGroup,
    examples="""\
  edgectl network show
  edgectl --json network show""",
)
@click.pass_obj
def network(app: AppContext) -> None:
    """Inspect the shared and per-project networks."""


@network.command()
@click.pass_obj
def show(app: AppContext) -> None:
    """List edgectl networks with their members."""
    from edgectl.services.topology import TopologyService

    app.emit(TopologyService(app.workspace).show())
