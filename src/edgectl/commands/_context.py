"""AppContext: shared Click context for all commands.

Created once by the root group and handed to subcommands through
``@click.pass_obj``. Owns the lazily built Workspace and the single exit
path for results (stdout or stderr, exit code).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from edgectl.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from edgectl.config.settings import EdgeSettings
    from edgectl.infrastructure.workspace import Workspace
    from edgectl.services.result import ServiceResult


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    The workspace is built on first use so ``--help`` and ``--version``
    never touch Docker or the state database.
    """

    def __init__(self, settings: EdgeSettings, *, workspace: Workspace | None = None) -> None:
        self.settings = settings
        self._workspace = workspace

        from edgectl.config.logging import configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

        if settings.verbose:
            from edgectl.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def workspace(self) -> Workspace:
        if self._workspace is None:
            from edgectl.infrastructure.workspace import Workspace

            self._workspace = Workspace(self.settings)
        if self._workspace.plugins is None:
            self._workspace.init_plugins()
        return self._workspace

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success: stdout. Warnings go to stderr unless JSON output is on,
          where they are already part of the payload.
        * Failure: stderr, exit code 1.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            if not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)
