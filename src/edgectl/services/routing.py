"""Route compilation and inspection.

Compilation is pure: :meth:`RoutingService.compile` builds a
:class:`~edgectl.domain.routes.RouteUnit` and never touches the proxy.
Publishing is the reload controller's job.
"""

from __future__ import annotations

from edgectl.domain.errors import DeploymentError, ValidationError
from edgectl.domain.models import CertificateRef, Project
from edgectl.domain.routes import RouteUnit, compile_route
from edgectl.domain.types import Stage
from edgectl.domain.validation import parse_upstream, validate_domain, validate_name
from edgectl.infrastructure.confdir import unit_filename
from edgectl.services._helpers import failure
from edgectl.services.base import BaseService
from edgectl.services.result import ServiceResult
from edgectl.services.telemetry import traced


class RoutingService(BaseService):
    """Compile route units and report on the published set."""

    def compile(
        self,
        project: Project,
        address: str,
        certificate: CertificateRef | None = None,
    ) -> RouteUnit:
        """Compile *project*'s unit forwarding to ``address:internal_port``."""
        return compile_route(
            project.name,
            project.domain,
            address,
            project.internal_port,
            self._settings.route_template,
            cert_path=certificate.cert_path if certificate else None,
            key_path=certificate.key_path if certificate else None,
        )

    def owner_of(self, domain: str) -> str | None:
        """Project currently routed for *domain* (unit header, then registry)."""
        owner = self._workspace.routes.owner(domain)
        if owner is None:
            owner = self._workspace.registry.project_for_domain(domain)
        return owner

    def check_conflict(self, domain: str, project: str) -> None:
        """Reject *domain* if it is already routed to a different project."""
        owner = self.owner_of(domain)
        if owner is not None and owner != project:
            msg = f"Domain {domain!r} is already routed to project {owner!r}"
            raise ValidationError(
                msg,
                stage=Stage.VALIDATE,
                check="domain_conflict",
                detail={"domain": domain, "owner": owner},
            )

    @traced
    def render(self, name: str, domain: str, upstream: str) -> ServiceResult:
        """Compile a unit without publishing it."""
        try:
            validate_name(name)
            domain = validate_domain(domain)
            address, port = parse_upstream(upstream)
        except DeploymentError as exc:
            return failure("route_render", exc)
        project = Project(name=name, domain=domain, host_port=port, internal_port=port)
        cert_path, key_path = self._settings.route_template.cert_paths(domain)
        unit = self.compile(
            project,
            address,
            CertificateRef(domain=domain, cert_path=cert_path, key_path=key_path),
        )
        return ServiceResult(
            ok=True,
            op="route_render",
            data={
                "domain": unit.domain,
                "project": unit.project,
                "upstream": unit.upstream,
                "filename": unit.filename,
                "digest": unit.digest(),
                "text": unit.render(),
            },
        )

    @traced
    def list_routes(self) -> ServiceResult:
        """Published units with their owners, digests and indexed upstreams."""
        routes = self._workspace.routes
        snapshot = routes.snapshot()
        indexed = {row["domain"]: row for row in self._workspace.registry.list_routes()}
        items = []
        for domain in routes.domains():
            row = indexed.get(domain)
            items.append(
                {
                    "domain": domain,
                    "project": routes.owner(domain),
                    "digest": snapshot.get(unit_filename(domain)),
                    "upstream": row["upstream"] if row else None,
                    "indexed": row is not None,
                }
            )
        warnings = [
            f"Registry lists {domain!r} but no unit file exists"
            for domain in sorted(indexed)
            if unit_filename(domain) not in snapshot
        ]
        return ServiceResult(
            ok=True,
            op="route_list",
            data={"items": items, "count": len(items)},
            warnings=warnings,
        )
