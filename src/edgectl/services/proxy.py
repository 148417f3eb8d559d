"""Shared proxy lifecycle: detection, bootstrap, recovery, health.

The proxy is classified as absent, stopped or running, and driven to a
healthy running state:

- absent: full bootstrap (shared network, directory layout, fallback
  certificate, container start on the shared network)
- stopped: start; a container that will not start is removed and recreated
- running: health verification only

The proxy is never destroyed implicitly; only ``edgectl proxy stop`` stops it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path

from edgectl.domain.errors import DeploymentError, InfrastructureError
from edgectl.domain.models import ProxyInstance
from edgectl.domain.types import ContainerStatus, ProxyState, Stage
from edgectl.infrastructure.retry import RetryExhausted
from edgectl.infrastructure.runtime import LABEL_ROLE, ContainerRuntimeError, ContainerSpec
from edgectl.services._helpers import failure, tail_lines
from edgectl.services.base import BaseService
from edgectl.services.result import ServiceResult
from edgectl.services.telemetry import trace_span, traced
from edgectl.services.topology import TopologyService

logger = logging.getLogger(__name__)

WORKER_MARKER = "nginx: worker process"
_LISTEN_RE = re.compile(r":(\d+)\s")


@dataclass
class HealthReport:
    """One round of proxy health checks."""

    syntax_ok: bool = False
    syntax_output: str = ""
    listening: list[int] = field(default_factory=list)
    missing_ports: list[int] = field(default_factory=list)
    workers: int = 0

    @property
    def healthy(self) -> bool:
        return self.syntax_ok and not self.missing_ports and self.workers > 0

    @property
    def failing_check(self) -> str | None:
        if not self.syntax_ok:
            return "config_syntax"
        if self.missing_ports:
            return "listening_ports"
        if self.workers == 0:
            return "worker_processes"
        return None

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


def parse_listening_ports(output: str) -> list[int]:
    """Ports in LISTEN state from ``netstat -tln`` or ``ss -tln`` output."""
    ports: set[int] = set()
    for line in output.splitlines():
        if "LISTEN" not in line:
            continue
        for match in _LISTEN_RE.finditer(line + " "):
            ports.add(int(match.group(1)))
            break
    return sorted(ports)


class ProxyService(BaseService):
    """Detect and drive the shared reverse proxy."""

    @property
    def name(self) -> str:
        return self._settings.proxy.container_name

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(self) -> ProxyInstance:
        """Classify the proxy without mutating anything."""
        status = self._runtime.container_status(self.name)
        state = ProxyState(status.value)
        networks: list[str] = []
        ports: list[int] = []
        if status == ContainerStatus.RUNNING:
            networks = sorted(self._runtime.network_addresses(self.name))
            ports = [self._settings.proxy.http_port, self._settings.proxy.https_port]
        return ProxyInstance(name=self.name, state=state, networks=networks, ports=ports)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def probe(self) -> HealthReport:
        """Run one round of health checks inside the proxy container."""
        runtime = self._runtime
        report = HealthReport()

        syntax = runtime.exec(self.name, ["nginx", "-t"])
        report.syntax_ok = syntax.ok
        report.syntax_output = syntax.output.strip()

        sockets = runtime.exec(self.name, ["netstat", "-tln"])
        if sockets.command_missing:
            sockets = runtime.exec(self.name, ["ss", "-tln"])
        report.listening = parse_listening_ports(sockets.output) if sockets.ok else []
        report.missing_ports = [
            p for p in self._settings.proxy.listen_ports if p not in report.listening
        ]

        processes = runtime.exec(self.name, ["ps"])
        report.workers = processes.output.count(WORKER_MARKER) if processes.ok else 0
        return report

    def verify_health(self) -> HealthReport:
        """Poll :meth:`probe` until healthy.

        Raises:
            InfrastructureError: Naming the last failing check, with a log tail.
        """
        try:
            return self._retry(
                self.probe,
                self._settings.retry.proxy_health,
                description="proxy health",
                accept=lambda report: report.healthy,
                retry_on=(ContainerRuntimeError,),
            )
        except RetryExhausted as exc:
            last: HealthReport | None = exc.last_value
            check = last.failing_check if last is not None else "exec"
            log_tail = tail_lines(self._runtime.logs(self.name, tail=20))
            detail: dict[str, object] = {"log_tail": log_tail}
            if last is not None:
                detail["health"] = last.to_dict()
            msg = (
                f"Proxy {self.name!r} failed health checks ({check}) "
                f"after {exc.attempts} attempts"
            )
            raise InfrastructureError(msg, stage=Stage.PROXY, check=check, detail=detail) from exc

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _container_spec(self) -> ContainerSpec:
        cfg = self._settings.proxy
        template = self._settings.route_template
        return ContainerSpec(
            name=self.name,
            image=cfg.image,
            network=cfg.shared_network,
            ports={template.plain_port: cfg.http_port, template.tls_port: cfg.https_port},
            mounts=self._workspace.layout.mounts(),
            labels={LABEL_ROLE: "proxy"},
            restart_policy=self._settings.deploy.restart_policy,
        )

    def _start_failed(self, exc: RetryExhausted, check: str) -> InfrastructureError:
        log_tail = tail_lines(self._runtime.logs(self.name, tail=20))
        msg = f"Proxy {self.name!r} failed to start after {exc.attempts} attempts: {exc.last_error}"
        return InfrastructureError(
            msg, stage=Stage.PROXY, check=check, detail={"log_tail": log_tail}
        )

    def _run(self) -> None:
        build_context = self._settings.proxy.build_context
        if build_context is not None:
            context = Path(build_context)
            if not context.is_absolute():
                context = self._workspace.root / context
            try:
                self._runtime.build_image(context, self._settings.proxy.image, args={})
            except ContainerRuntimeError as exc:
                raise InfrastructureError(
                    str(exc), stage=Stage.PROXY, check="proxy_build"
                ) from exc

        spec = self._container_spec()

        def run() -> bool:
            status = self._runtime.container_status(self.name)
            if status == ContainerStatus.ABSENT:
                self._runtime.run_container(spec)
            elif status == ContainerStatus.STOPPED:
                self._runtime.start_container(self.name)
            return self._runtime.container_status(self.name) == ContainerStatus.RUNNING

        try:
            self._retry(
                run,
                self._settings.retry.proxy_start,
                description="start proxy",
                retry_on=(ContainerRuntimeError,),
            )
        except RetryExhausted as exc:
            raise self._start_failed(exc, "proxy_start") from exc

    def _start_stopped(self) -> None:
        def start() -> bool:
            self._runtime.start_container(self.name)
            return self._runtime.container_status(self.name) == ContainerStatus.RUNNING

        try:
            self._retry(
                start,
                self._settings.retry.proxy_start,
                description="restart stopped proxy",
                retry_on=(ContainerRuntimeError,),
            )
        except RetryExhausted:
            logger.warning("Proxy %s will not start; recreating the container", self.name)
            try:
                self._runtime.remove_container(self.name)
            except ContainerRuntimeError as exc:
                raise InfrastructureError(
                    f"Proxy {self.name!r} will not start and could not be removed: {exc}",
                    stage=Stage.PROXY,
                    check="proxy_recreate",
                ) from exc
            self._run()

    def _prepare(self, warnings: list[str]) -> list[str]:
        fallback = self._workspace.certificates.place_fallback()
        if not fallback:
            warnings.append("No generic certificate pair found; unknown TLS hosts are rejected")
        return self._workspace.layout.ensure(fallback_certificate=fallback)

    def ensure_ready(self, warnings: list[str]) -> dict[str, object]:
        """Drive the proxy to a healthy running state.

        Non-fatal issues are appended to *warnings*. Returns a summary dict;
        raises :class:`InfrastructureError` on failure.
        """
        before = self.detect().state
        summary: dict[str, object] = {"name": self.name, "state_before": before.value}
        topology = TopologyService(self._workspace)

        with trace_span("proxy", state=before.value):
            if before == ProxyState.ABSENT:
                logger.info("Proxy %s absent; bootstrapping", self.name)
                summary["shared_network_created"] = topology.ensure_shared_network()
                summary["layout_written"] = self._prepare(warnings)
                self._run()
            elif before == ProxyState.STOPPED:
                logger.info("Proxy %s stopped; starting", self.name)
                topology.ensure_shared_network()
                self._prepare(warnings)
                self._start_stopped()
            topology.attach(self.name, topology.shared_network)
            report = self.verify_health()

        summary["state"] = ProxyState.RUNNING.value
        summary["health"] = report.to_dict()
        return summary

    # ------------------------------------------------------------------
    # CLI-facing operations
    # ------------------------------------------------------------------

    @traced
    def ensure_running(self) -> ServiceResult:
        """Start (or bootstrap) the proxy and verify its health."""
        warnings: list[str] = []
        try:
            summary = self.ensure_ready(warnings)
        except DeploymentError as exc:
            return failure("proxy_start", exc, warnings=warnings)
        return ServiceResult(ok=True, op="proxy_start", data=summary, warnings=warnings)

    @traced
    def health(self) -> ServiceResult:
        if self.detect().state != ProxyState.RUNNING:
            exc = InfrastructureError(
                f"Proxy {self.name!r} is not running", stage=Stage.PROXY, check="running"
            )
            return failure("proxy_health", exc)
        try:
            report = self.verify_health()
        except DeploymentError as exc:
            return failure("proxy_health", exc)
        return ServiceResult(ok=True, op="proxy_health", data=report.to_dict())

    @traced
    def status(self) -> ServiceResult:
        instance = self.detect()
        data = instance.model_dump(mode="json")
        data["routes"] = self._workspace.routes.domains()
        data["image"] = self._settings.proxy.image
        return ServiceResult(ok=True, op="proxy_status", data=data)

    @traced
    def stop(self) -> ServiceResult:
        state = self.detect().state
        if state == ProxyState.RUNNING:
            try:
                self._runtime.stop_container(self.name)
            except ContainerRuntimeError as exc:
                err = InfrastructureError(str(exc), stage=Stage.PROXY, check="proxy_stop")
                return failure("proxy_stop", err)
        return ServiceResult(
            ok=True,
            op="proxy_stop",
            data={
                "name": self.name,
                "state_before": state.value,
                "stopped": state == ProxyState.RUNNING,
            },
        )

    @traced
    def restart(self) -> ServiceResult:
        """Stop the proxy, then start it and verify health."""
        stopped = self.stop()
        if not stopped.ok:
            return stopped.model_copy(update={"op": "proxy_restart"})
        started = self.ensure_running()
        return started.model_copy(update={"op": "proxy_restart"})

    @traced
    def logs(self, *, tail: int = 20) -> ServiceResult:
        text = self._runtime.logs(self.name, tail=tail)
        return ServiceResult(
            ok=True, op="proxy_logs", data={"name": self.name, "lines": tail_lines(text, tail)}
        )
