"""Command group: route units."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from edgectl.commands._base import EdgeGroup
from edgectl.services.routing import RoutingService

if TYPE_CHECKING:
    from edgectl.commands._context import AppContext

_ROUTE_EXAMPLES = """\
  edgectl route list
  edgectl route render shop --domain shop.example.com --upstream 172.18.0.5:80
  edgectl -q route render shop --domain shop.example.com --upstream 172.18.0.5:80 > shop.conf"""


@click.group(cls=EdgeGroup, examples=_ROUTE_EXAMPLES)
@click.pass_obj
def route(app: AppContext) -> None:
    """Compile and list route units."""


@route.command()
@click.argument("name")
@click.option("--domain", required=True, help="Domain the unit serves.")
@click.option("--upstream", required=True, help="Upstream as ADDR:PORT.")
@click.pass_obj
def render(app: AppContext, name: str, domain: str, upstream: str) -> None:
    """Print the unit NAME would get, without publishing it."""
    app.emit(RoutingService(app.workspace).render(name, domain, upstream))


@route.command(name="list")
@click.pass_obj
def list_cmd(app: AppContext) -> None:
    """List published units and their owners."""
    app.emit(RoutingService(app.workspace).list_routes())
