"""Command group: shared proxy lifecycle."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from edgectl.commands._base import EdgeGroup
from edgectl.services.proxy import ProxyService

if TYPE_CHECKING:
    from edgectl.commands._context import AppContext

_PROXY_EXAMPLES = """\
  edgectl proxy status
  edgectl proxy start
  edgectl proxy health
  edgectl proxy restart
  edgectl proxy logs --tail 50
  edgectl proxy stop"""


@click.group(cls=EdgeGroup, examples=_PROXY_EXAMPLES)
@click.pass_obj
def proxy(app: AppContext) -> None:
    """Inspect and control the shared proxy."""


@proxy.command()
@click.pass_obj
def status(app: AppContext) -> None:
    """Show the proxy container's state, networks and routes."""
    app.emit(ProxyService(app.workspace).status())


@proxy.command(
    examples="""\
  edgectl proxy start
  edgectl -v proxy start"""
)
@click.pass_obj
def start(app: AppContext) -> None:
    """Start the proxy (bootstrapping it if absent) and verify health."""
    app.emit(ProxyService(app.workspace).ensure_running())


@proxy.command()
@click.pass_obj
def stop(app: AppContext) -> None:
    """Stop the proxy container."""
    app.emit(ProxyService(app.workspace).stop())


@proxy.command()
@click.pass_obj
def restart(app: AppContext) -> None:
    """Stop, start, and re-verify the proxy."""
    app.emit(ProxyService(app.workspace).restart())


@proxy.command()
@click.pass_obj
def health(app: AppContext) -> None:
    """Run the syntax, listening-port and worker checks."""
    app.emit(ProxyService(app.workspace).health())


@proxy.command(
    examples="""\
  edgectl proxy logs
  edgectl proxy logs --tail 100"""
)
@click.option("--tail", default=20, type=click.IntRange(min=1), help="Lines to show.")
@click.pass_obj
def logs(app: AppContext, tail: int) -> None:
    """Show the last lines of the proxy's log output."""
    app.emit(ProxyService(app.workspace).logs(tail=tail))
