"""Deployment orchestrator: the add-project and remove-project state machines.

``deploy`` runs these stages strictly in order:

    validate -> proxy -> network -> container -> certificates
             -> connectivity -> compile -> apply -> smoke_test

Any stage failing aborts the rest. Resources created during the run
(container, isolated network, placed certificates) are torn down in reverse
order before the error is reported. The live proxy configuration only
changes once ``apply`` reaches the applied state, and a strict smoke-test
failure reverts exactly that change.

INVARIANT: Publishing a route never alters another domain's route.
INVARIANT: A route is published only after its upstream answered from
inside the proxy.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

from edgectl.domain.errors import (
    ConnectivityError,
    DeploymentError,
    InfrastructureError,
    ValidationError,
)
from edgectl.domain.models import BuildParams, CertificateRef, DeploymentAttempt, Project
from edgectl.domain.types import ContainerStatus, EnvironmentClass, Operation, Outcome, Stage
from edgectl.domain.validation import (
    validate_domain,
    validate_environment,
    validate_name,
    validate_port,
)
from edgectl.infrastructure.confdir import unit_filename
from edgectl.infrastructure.retry import RetryExhausted
from edgectl.infrastructure.runtime import (
    LABEL_DOMAIN,
    LABEL_ENVIRONMENT,
    LABEL_PROJECT,
    LABEL_ROLE,
    ContainerRuntimeError,
    ContainerSpec,
)
from edgectl.services._helpers import failure, now_iso, tail_lines
from edgectl.services.base import BaseService
from edgectl.services.connectivity import ConnectivityService
from edgectl.services.proxy import ProxyService
from edgectl.services.reload import ReloadController, UnitChange
from edgectl.services.result import ServiceResult
from edgectl.services.routing import RoutingService
from edgectl.services.smoke import SmokeProber, outcomes_to_dicts
from edgectl.services.telemetry import trace_span, traced
from edgectl.services.topology import TopologyService, isolated_network_name

if TYPE_CHECKING:
    from edgectl.infrastructure.workspace import Workspace

logger = logging.getLogger(__name__)
log = structlog.get_logger(__name__)

KIND_CONTAINER = "container"
KIND_NETWORK = "network"
KIND_CERTIFICATES = "certificates"

DEPLOY_STAGES = (
    Stage.VALIDATE,
    Stage.PROXY,
    Stage.NETWORK,
    Stage.CONTAINER,
    Stage.CERTIFICATES,
    Stage.CONNECTIVITY,
    Stage.COMPILE,
    Stage.APPLY,
    Stage.SMOKE_TEST,
)


def _runtime_failure(exc: ContainerRuntimeError, stage: Stage) -> InfrastructureError:
    return InfrastructureError(
        f"Container runtime call failed: {exc}", stage=stage, check="runtime_api"
    )


def _stage_in_progress(attempt: DeploymentAttempt) -> Stage:
    """First deploy stage the attempt has not completed."""
    for stage in DEPLOY_STAGES:
        if stage not in attempt.steps:
            return stage
    return Stage.APPLY


class DeploymentOrchestrator(BaseService):
    """Top-level deploy/remove/status operations."""

    def __init__(self, workspace: Workspace) -> None:
        super().__init__(workspace)
        self.proxy = ProxyService(workspace)
        self.topology = TopologyService(workspace)
        self.connectivity = ConnectivityService(workspace)
        self.routing = RoutingService(workspace)
        self.reload = ReloadController(workspace)
        self.smoke = SmokeProber(workspace)

    # ------------------------------------------------------------------
    # Validation (no mutation)
    # ------------------------------------------------------------------

    def _validate(
        self,
        name: str,
        domain: str,
        port: int | str,
        environment: str | EnvironmentClass | None,
        image: str | None,
        build: BuildParams | None,
    ) -> Project:
        validate_name(name)
        domain = validate_domain(domain)
        host_port = validate_port(port)
        env = validate_environment(environment or self._settings.deploy.default_environment)

        if name == self._settings.proxy.container_name:
            msg = f"Project name {name!r} is reserved for the shared proxy"
            raise ValidationError(msg, stage=Stage.VALIDATE, check="name_reserved")

        self.routing.check_conflict(domain, name)

        registered = self._workspace.registry.get_project(name)
        if registered is not None and registered["domain"] != domain:
            msg = (
                f"Project {name!r} is already deployed for {registered['domain']!r}; "
                "remove it before deploying under another domain"
            )
            raise ValidationError(
                msg,
                stage=Stage.VALIDATE,
                check="project_domain",
                detail={"registered_domain": registered["domain"]},
            )

        if build is not None and not Path(build.context).is_dir():
            msg = f"Build context is not a directory: {build.context}"
            raise ValidationError(msg, stage=Stage.VALIDATE, check="build_context")

        if image:
            resolved_image = image
        elif build is not None:
            resolved_image = f"{name}:latest"
        else:
            resolved_image = self._settings.deploy.default_image

        return Project(
            name=name,
            domain=domain,
            host_port=host_port,
            internal_port=self._settings.routes.internal_port,
            environment=env,
            image=resolved_image,
        )

    # ------------------------------------------------------------------
    # Container stage
    # ------------------------------------------------------------------

    def _container_spec(self, project: Project) -> ContainerSpec:
        return ContainerSpec(
            name=project.container_name,
            image=project.image,
            network=project.isolated_network,
            ports={project.internal_port: project.host_port},
            labels={
                LABEL_ROLE: "project",
                LABEL_PROJECT: project.name,
                LABEL_DOMAIN: project.domain,
                LABEL_ENVIRONMENT: project.environment.value,
            },
            restart_policy=self._settings.deploy.restart_policy,
        )

    def _container_error(self, project: Project, check: str, exc: Exception) -> InfrastructureError:
        log_tail = tail_lines(self._runtime.logs(project.container_name, tail=20))
        return InfrastructureError(
            f"Container {project.container_name!r} failed: {exc}",
            stage=Stage.CONTAINER,
            check=check,
            detail={"container": project.container_name, "log_tail": log_tail},
        )

    def _start_container(
        self, project: Project, build: BuildParams | None, attempt: DeploymentAttempt
    ) -> None:
        runtime = self._runtime
        name = project.container_name
        status = runtime.container_status(name)
        try:
            if status == ContainerStatus.ABSENT:
                if build is not None:
                    with trace_span("build", context=build.context):
                        runtime.build_image(
                            Path(build.context),
                            project.image,
                            dockerfile=build.dockerfile,
                            args=dict(build.args),
                        )
                runtime.run_container(self._container_spec(project))
                attempt.track(KIND_CONTAINER, name)
            elif status == ContainerStatus.STOPPED:
                runtime.start_container(name)
            else:
                logger.info("Reusing running container %s", name)
        except ContainerRuntimeError as exc:
            created = {"kind": KIND_CONTAINER, "name": name} in attempt.created
            if status == ContainerStatus.ABSENT and not created:
                if runtime.container_status(name) != ContainerStatus.ABSENT:
                    attempt.track(KIND_CONTAINER, name)
            raise self._container_error(project, "container_start", exc) from exc

        try:
            self._retry(
                lambda: runtime.container_status(name) == ContainerStatus.RUNNING,
                self._settings.retry.container_start,
                description=f"wait for {name}",
            )
        except RetryExhausted as exc:
            raise self._container_error(project, "container_running", exc) from exc

    # ------------------------------------------------------------------
    # Deploy
    # ------------------------------------------------------------------

    def _neighbour(self, domain: str) -> str | None:
        others = [d for d in self._workspace.routes.domains() if d != domain]
        return others[0] if others else None

    def _smoke_test(
        self, project: Project, change: UnitChange, attempt: DeploymentAttempt
    ) -> list[dict[str, Any]]:
        neighbour = self._neighbour(project.domain)
        outcomes = self.smoke.run(project.domain, neighbour=neighbour)
        failed = [o for o in outcomes if not o.ok]
        if not failed:
            return outcomes_to_dicts(outcomes)
        if not self._settings.smoke.strict:
            attempt.warnings.extend(f"Smoke test: {o.describe()}" for o in failed)
            return outcomes_to_dicts(outcomes)

        self.reload.revert(change, stage=Stage.SMOKE_TEST)
        attempt.rolled_back = True
        msg = f"Smoke test failed for {project.domain!r}: {failed[0].describe()}"
        raise ConnectivityError(
            msg,
            stage=Stage.SMOKE_TEST,
            check=failed[0].name,
            detail={"probes": outcomes_to_dicts(outcomes)},
        )

    def _run_deploy(
        self, project: Project, build: BuildParams | None, attempt: DeploymentAttempt
    ) -> dict[str, Any]:
        warnings = attempt.warnings

        with trace_span(Stage.PROXY):
            proxy_summary = self.proxy.ensure_ready(warnings)
        attempt.complete(Stage.PROXY)

        with trace_span(Stage.NETWORK):
            self.topology.ensure_shared_network()
            if self.topology.ensure_isolated_network(project.name):
                attempt.track(KIND_NETWORK, project.isolated_network)
        attempt.complete(Stage.NETWORK)

        with trace_span(Stage.CONTAINER):
            self._start_container(project, build, attempt)
            self.topology.attach(project.container_name, project.isolated_network)
            self.topology.attach(project.container_name, self.topology.shared_network)
            warnings.extend(self.topology.enforce_isolation(project.name))
        attempt.complete(Stage.CONTAINER)

        with trace_span(Stage.CERTIFICATES):
            certificates = self._workspace.certificates
            already_placed = certificates.is_placed(project.domain)
            cert: CertificateRef = certificates.place(project.domain, project.environment)
            if not already_placed:
                attempt.track(KIND_CERTIFICATES, project.domain)
        attempt.complete(Stage.CERTIFICATES)

        with trace_span(Stage.CONNECTIVITY):
            report = self.connectivity.verify(project.container_name, project.internal_port)
            if report.warning:
                warnings.append(report.warning)
        attempt.complete(Stage.CONNECTIVITY)

        unit = self.routing.compile(project, report.address, cert)
        attempt.complete(Stage.COMPILE)

        with trace_span(Stage.APPLY, domain=project.domain):
            change = self.reload.apply(unit)
        attempt.complete(Stage.APPLY)

        smoke: list[dict[str, Any]] = []
        if self._settings.smoke.enabled:
            with trace_span(Stage.SMOKE_TEST):
                smoke = self._smoke_test(project, change, attempt)
            attempt.complete(Stage.SMOKE_TEST)

        registry = self._workspace.registry
        try:
            registry.save_project(project)
            registry.record_route(
                domain=project.domain,
                project=project.name,
                upstream=unit.upstream,
                digest=unit.digest(),
                cert_path=cert.cert_path,
                reachability=report.reachability.value,
            )
        except SQLAlchemyError as exc:
            self.reload.revert(change, stage=Stage.APPLY)
            attempt.rolled_back = True
            msg = f"Could not index the route for {project.domain!r}: {exc}"
            raise InfrastructureError(
                msg, stage=Stage.APPLY, check="registry", detail={"domain": project.domain}
            ) from exc

        return {
            "project": project.name,
            "domain": project.domain,
            "environment": project.environment.value,
            "image": project.image,
            "container": project.container_name,
            "host_port": project.host_port,
            "upstream": unit.upstream,
            "reachability": report.reachability.value,
            "unit": unit.filename,
            "digest": unit.digest(),
            "replaced": change.previous is not None,
            "proxy": proxy_summary,
            "smoke": smoke,
        }

    def _release_certificates(self, domain: str, project: str) -> None:
        with self._workspace.lock.hold():
            owner = self._workspace.routes.owner(domain)
            if owner is not None and owner != project:
                logger.info("Keeping certificates for %s; routed to %s", domain, owner)
                return
            self._workspace.certificates.remove(domain)

    def _compensate(self, attempt: DeploymentAttempt) -> None:
        """Tear down resources created by this run, newest first."""
        for resource in reversed(attempt.created):
            kind, name = resource["kind"], resource["name"]
            try:
                if kind == KIND_CONTAINER:
                    self._runtime.remove_container(name)
                elif kind == KIND_NETWORK:
                    self.topology.remove_isolated_network(attempt.project)
                elif kind == KIND_CERTIFICATES:
                    self._release_certificates(name, attempt.project)
            except (DeploymentError, ContainerRuntimeError, OSError) as exc:
                logger.warning("Compensation failed for %s %s: %s", kind, name, exc)
                attempt.warnings.append(f"Could not tear down {kind} {name!r}: {exc}")
            else:
                log.info("compensated", kind=kind, name=name)
        if attempt.created:
            attempt.rolled_back = True

    def _record(self, attempt: DeploymentAttempt, started: str, error_code: str | None) -> None:
        try:
            self._workspace.registry.record_attempt(
                attempt, started=started, error_code=error_code
            )
        except SQLAlchemyError as exc:
            logger.warning("Could not record deployment history: %s", exc)
            attempt.warnings.append(f"Deployment history not recorded: {exc}")

    @traced
    def deploy(
        self,
        name: str,
        domain: str,
        upstream_port: int | str,
        environment: str | EnvironmentClass | None = None,
        *,
        image: str | None = None,
        build: BuildParams | None = None,
    ) -> ServiceResult:
        """Add a project to the running ecosystem (or redeploy it in place)."""
        started = now_iso()
        attempt = DeploymentAttempt(project=name, domain=domain, operation=Operation.DEPLOY)
        try:
            project = self._validate(name, domain, upstream_port, environment, image, build)
            attempt.domain = project.domain
            attempt.complete(Stage.VALIDATE)
            try:
                data = self._run_deploy(project, build, attempt)
            except ContainerRuntimeError as raw:
                raise _runtime_failure(raw, _stage_in_progress(attempt)) from raw
        except DeploymentError as exc:
            attempt.outcome = Outcome.FAILED
            attempt.failed_stage = exc.stage
            self._compensate(attempt)
            log.error(
                "deploy.failed",
                project=name,
                domain=attempt.domain,
                stage=exc.stage,
                check=exc.check,
                rolled_back=attempt.rolled_back,
            )
            if attempt.rolled_back:
                self._dispatch_event(
                    "post_rollback",
                    {"project": name, "domain": attempt.domain, "stage": exc.stage},
                    attempt.warnings,
                )
            self._record(attempt, started, exc.code)
            return failure("deploy", exc, data=attempt.summary(), warnings=attempt.warnings)

        attempt.outcome = Outcome.SUCCESS
        self._record(attempt, started, None)
        self._dispatch_event(
            "post_deploy",
            {
                "project": project.name,
                "domain": project.domain,
                "upstream": data["upstream"],
                "environment": project.environment.value,
            },
            attempt.warnings,
        )
        log.info("deploy.complete", project=project.name, domain=project.domain)
        data["steps"] = list(attempt.steps)
        return ServiceResult(ok=True, op="deploy", data=data, warnings=attempt.warnings)

    # ------------------------------------------------------------------
    # Remove
    # ------------------------------------------------------------------

    def _find_domain(self, name: str) -> str | None:
        row = self._workspace.registry.get_project(name)
        if row is not None:
            return str(row["domain"])
        labelled = self._runtime.container_labels(name).get(LABEL_DOMAIN)
        if labelled:
            return labelled
        routes = self._workspace.routes
        for domain in routes.domains():
            if routes.owner(domain) == name:
                return domain
        return None

    def _run_remove(self, name: str, attempt: DeploymentAttempt) -> dict[str, Any]:
        domain = self._find_domain(name)
        container_present = self._runtime.container_status(name) != ContainerStatus.ABSENT
        network_present = self._runtime.network_exists(isolated_network_name(name))
        if domain is None and not container_present and not network_present:
            raise ValidationError(
                f"Unknown project: {name!r}", stage=Stage.VALIDATE, check="project_unknown"
            )
        attempt.domain = domain or ""
        attempt.complete(Stage.VALIDATE)

        retracted = False
        if domain is not None:
            with trace_span("retract", domain=domain):
                retracted = self.reload.retract(domain, project=name)
        attempt.complete(Stage.APPLY)

        if container_present:
            try:
                self._runtime.stop_container(name)
                self._runtime.remove_container(name)
            except ContainerRuntimeError as exc:
                raise InfrastructureError(
                    str(exc), stage=Stage.TEARDOWN, check="container_remove"
                ) from exc
        network_removed = self.topology.remove_isolated_network(name)
        certs_removed = self._workspace.certificates.remove(domain) if domain else False
        self._workspace.registry.delete_project(name)
        attempt.complete(Stage.TEARDOWN)

        return {
            "project": name,
            "domain": domain,
            "route_retracted": retracted,
            "container_removed": container_present,
            "network_removed": network_removed,
            "certificates_removed": certs_removed,
        }

    @traced
    def remove(self, name: str) -> ServiceResult:
        """Retract a project's route and tear down its container and network."""
        started = now_iso()
        attempt = DeploymentAttempt(project=name, operation=Operation.REMOVE)
        try:
            validate_name(name)
            try:
                data = self._run_remove(name, attempt)
            except ContainerRuntimeError as raw:
                raise _runtime_failure(raw, Stage.TEARDOWN) from raw
        except DeploymentError as exc:
            attempt.outcome = Outcome.FAILED
            attempt.failed_stage = exc.stage
            if not isinstance(exc, ValidationError):
                self._record(attempt, started, exc.code)
            return failure("remove", exc, data=attempt.summary(), warnings=attempt.warnings)

        attempt.outcome = Outcome.SUCCESS
        self._record(attempt, started, None)
        self._dispatch_event(
            "post_remove", {"project": name, "domain": data["domain"] or ""}, attempt.warnings
        )
        return ServiceResult(ok=True, op="remove", data=data, warnings=attempt.warnings)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @traced
    def status(self) -> ServiceResult:
        """Registered projects with container state and route digest."""
        registry = self._workspace.registry
        routes = self._workspace.routes
        snapshot = routes.snapshot()
        indexed_routes = {row["domain"]: row for row in registry.list_routes()}
        items = []
        known_domains: set[str] = set()
        for row in registry.list_projects():
            domain = row["domain"]
            known_domains.add(domain)
            route = indexed_routes.get(domain)
            items.append(
                {
                    "name": row["name"],
                    "domain": domain,
                    "environment": row["environment"],
                    "host_port": row["host_port"],
                    "container": self._runtime.container_status(row["name"]).value,
                    "upstream": route["upstream"] if route else None,
                    "digest": snapshot.get(unit_filename(domain)),
                }
            )
        warnings = [
            f"Route unit for {domain!r} has no registered project"
            for domain in routes.domains()
            if domain not in known_domains
        ]
        return ServiceResult(
            ok=True,
            op="status",
            data={
                "proxy": self.proxy.detect().model_dump(mode="json"),
                "items": items,
                "count": len(items),
                "history": registry.history(limit=5),
            },
            warnings=warnings,
        )
