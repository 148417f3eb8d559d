"""Command: deploy a project behind the shared proxy."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from edgectl.commands._base import EdgeCommand

if TYPE_CHECKING:
    from edgectl.commands._context import AppContext


def _parse_build_args(values: tuple[str, ...]) -> dict[str, str]:
    args: dict[str, str] = {}
    for value in values:
        key, sep, arg = value.partition("=")
        if not sep or not key:
            msg = f"Build arguments take the form KEY=VALUE (got {value!r})"
            raise click.BadParameter(msg, param_hint="--build-arg")
        args[key] = arg
    return args


@click.command(
    cls=EdgeCommand,
    examples="""\
  edgectl deploy shop --domain shop.example.com --port 8081
  edgectl deploy blog --domain blog.example.com --port 8082 --env pro
  edgectl deploy api --domain api.example.com --port 8083 --image ghcr.io/acme/api:1.4
  edgectl deploy app --domain app.example.com --port 8084 --build-context ./app \\
      --build-arg VERSION=2.1
  edgectl --json deploy shop --domain shop.example.com --port 8081""",
)
@click.argument("name")
@click.option("--domain", required=True, help="Public domain routed to the project.")
@click.option("--port", "upstream_port", required=True, help="Host port the project publishes.")
@click.option("--env", "environment", default=None, help="Environment class (dev or pro).")
@click.option("--image", default=None, help="Container image to run.")
@click.option(
    "--build-context",
    default=None,
    type=click.Path(file_okay=False),
    help="Build the image from this directory first.",
)
@click.option("--dockerfile", default="Dockerfile", help="Dockerfile inside the build context.")
@click.option("--build-arg", "build_args", multiple=True, help="Build argument KEY=VALUE.")
@click.pass_obj
def deploy(
    app: AppContext,
    name: str,
    domain: str,
    upstream_port: str,
    environment: str | None,
    image: str | None,
    build_context: str | None,
    dockerfile: str,
    build_args: tuple[str, ...],
) -> None:
    """Deploy NAME at DOMAIN without disturbing other projects."""
    from edgectl.domain.models import BuildParams
    from edgectl.services.orchestrator import DeploymentOrchestrator

    build = None
    if build_context is not None:
        build = BuildParams(
            context=build_context,
            dockerfile=dockerfile,
            args=_parse_build_args(build_args),
        )
    elif build_args:
        raise click.UsageError("--build-arg requires --build-context")

    orchestrator = DeploymentOrchestrator(app.workspace)
    app.emit(
        orchestrator.deploy(
            name, domain, upstream_port, environment, image=image, build=build
        )
    )
