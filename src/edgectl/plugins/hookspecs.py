"""Pluggy hook specifications for edgectl deployment events.

Hooks run synchronously after the corresponding operation has finished.
Editing ``/etc/hosts`` for local development domains is the intended use of
``post_deploy`` and ``post_remove``; edgectl itself never touches it.
"""

from __future__ import annotations

import pluggy

hookspec = pluggy.HookspecMarker("edgectl")
hookimpl = pluggy.HookimplMarker("edgectl")


class EdgectlHookSpec:
    """Hook specifications for the edgectl plugin system."""

    @hookspec
    def post_deploy(
        self,
        project: str,
        domain: str,
        upstream: str,
        environment: str,
    ) -> None:
        """Called after a project's route is live."""

    @hookspec
    def post_remove(self, project: str, domain: str) -> None:
        """Called after a project and its route are torn down."""

    @hookspec
    def post_rollback(self, project: str, domain: str, stage: str) -> None:
        """Called after a failed deployment has been compensated."""
