"""Validate-before-reload discipline for the live proxy configuration.

Every change to the route-unit directory goes through :class:`ReloadController`
under the configuration lock:

1. stage: write (or delete) one unit beside the applied set
2. validate: ``nginx -t`` against the complete staged set
3. reload: ``nginx -s reload`` (graceful; in-flight requests finish)

A validation failure restores the directory to exactly its previous bytes
and raises :class:`ConfigurationError`. A reload failure after successful
validation does the same, logs the staged-vs-live discrepancy and raises
:class:`ReloadError` flagged for manual intervention.

INVARIANT: Staging a unit never modifies any other domain's unit.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from edgectl.domain.errors import ConfigurationError, ReloadError, ValidationError
from edgectl.domain.lifecycle import UnitState, is_valid_transition
from edgectl.domain.routes import RouteUnit
from edgectl.domain.types import Stage
from edgectl.infrastructure.runtime import ContainerRuntimeError, ExecResult
from edgectl.services._helpers import tail_lines
from edgectl.services.base import BaseService
from edgectl.services.telemetry import trace_span

log = structlog.get_logger(__name__)

VALIDATE_COMMAND = ["nginx", "-t"]
RELOAD_COMMAND = ["nginx", "-s", "reload"]


@dataclass
class UnitChange:
    """One staged change to the route-unit directory.

    ``text`` is None for a removal. ``previous`` holds the bytes the domain's
    unit had before staging (None if there was no unit).
    """

    domain: str
    project: str
    text: str | None
    previous: str | None = None
    state: UnitState = UnitState.STAGED
    history: list[str] = field(default_factory=list)

    @property
    def is_removal(self) -> bool:
        return self.text is None

    def move(self, target: UnitState) -> None:
        if not is_valid_transition(self.state, target):
            msg = f"Illegal unit transition {self.state} -> {target} for {self.domain}"
            raise ValueError(msg)
        self.history.append(self.state.value)
        self.state = target


class ReloadController(BaseService):
    """Stage, validate, and apply or roll back route units."""

    @property
    def _proxy(self) -> str:
        return self._settings.proxy.container_name

    def snapshot(self) -> dict[str, str]:
        """``{filename: sha256}`` of the unit directory as it stands."""
        return self._workspace.routes.snapshot()

    def _exec(self, command: list[str]) -> ExecResult:
        try:
            return self._runtime.exec(self._proxy, command)
        except ContainerRuntimeError as exc:
            return ExecResult(exit_code=1, output=str(exc))

    def _restore(self, domain: str, previous: str | None) -> None:
        routes = self._workspace.routes
        if previous is None:
            routes.remove(domain)
        else:
            routes.write(domain, previous)

    def _commit(self, change: UnitChange, stage: Stage) -> UnitChange:
        """Stage *change*, validate the full set, then reload.

        Caller holds the configuration lock.
        """
        routes = self._workspace.routes
        change.previous = routes.read(change.domain)
        if change.text is None:
            routes.remove(change.domain)
        else:
            routes.write(change.domain, change.text)

        with trace_span("validate", domain=change.domain):
            result = self._exec(VALIDATE_COMMAND)
        if not result.ok:
            change.move(UnitState.INVALID)
            self._restore(change.domain, change.previous)
            change.move(UnitState.ROLLED_BACK)
            log.warning("unit.invalid", domain=change.domain, output=result.output.strip())
            msg = f"Proxy rejected the configuration for {change.domain!r}"
            raise ConfigurationError(
                msg,
                stage=stage,
                check="config_syntax",
                detail={
                    "domain": change.domain,
                    "validator_output": tail_lines(result.output),
                },
            )
        change.move(UnitState.VALIDATED)

        with trace_span("reload", domain=change.domain):
            result = self._exec(RELOAD_COMMAND)
        if not result.ok:
            staged = self.snapshot()
            self._restore(change.domain, change.previous)
            change.move(UnitState.ROLLED_BACK)
            log.error(
                "reload.discrepancy",
                domain=change.domain,
                staged=staged,
                on_disk=self.snapshot(),
                output=result.output.strip(),
            )
            msg = (
                f"Proxy reload failed after {change.domain!r} validated; the live "
                "configuration may differ from the unit directory"
            )
            raise ReloadError(
                msg,
                stage=stage,
                check="reload",
                detail={"domain": change.domain, "reload_output": tail_lines(result.output)},
            )
        change.move(UnitState.APPLIED)
        log.info(
            "unit.applied",
            domain=change.domain,
            project=change.project,
            removal=change.is_removal,
        )
        return change

    def apply(self, unit: RouteUnit) -> UnitChange:
        """Publish *unit*, replacing any previous unit of the same project.

        Ownership is checked again under the lock: another run may have
        published the domain since this one validated its input.
        """
        change = UnitChange(domain=unit.domain, project=unit.project, text=unit.render())
        with self._workspace.lock.hold():
            owner = self._workspace.routes.owner(unit.domain)
            if owner is not None and owner != unit.project:
                msg = f"Domain {unit.domain!r} was routed to project {owner!r} during this run"
                raise ValidationError(
                    msg,
                    stage=Stage.APPLY,
                    check="domain_conflict",
                    detail={"domain": unit.domain, "owner": owner},
                )
            return self._commit(change, Stage.APPLY)

    def retract(self, domain: str, *, project: str = "", stage: Stage = Stage.TEARDOWN) -> bool:
        """Remove *domain*'s unit with the same discipline. False if none exists."""
        with self._workspace.lock.hold():
            if not self._workspace.routes.exists(domain):
                return False
            self._commit(UnitChange(domain=domain, project=project, text=None), stage)
        return True

    def revert(self, applied: UnitChange, *, stage: Stage = Stage.SMOKE_TEST) -> UnitChange:
        """Undo an applied change, restoring the domain's previous unit (or none)."""
        undo = UnitChange(domain=applied.domain, project=applied.project, text=applied.previous)
        with self._workspace.lock.hold():
            self._commit(undo, stage)
        applied.move(UnitState.RETRACTED)
        return undo
