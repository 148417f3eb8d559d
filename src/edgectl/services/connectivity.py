"""Upstream reachability gate.

Before any route is published the project's container must be reachable
from inside the proxy, at the literal address the route will embed:

1. Poll the runtime's inspect data until the container has an address on
   the shared network.
2. Probe ``http://ADDR:PORT<health_path>`` with curl from inside the proxy.
3. If curl is not installed in the proxy image, fall back to a single ping;
   success there means "reachable, readiness unknown" and adds a warning.

Exhausting either poll raises :class:`ConnectivityError` and nothing is
published.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass

from edgectl.domain.errors import ConnectivityError
from edgectl.domain.types import Reachability, Stage
from edgectl.domain.validation import format_upstream
from edgectl.infrastructure.retry import RetryExhausted
from edgectl.infrastructure.runtime import ContainerRuntimeError
from edgectl.services.base import BaseService

logger = logging.getLogger(__name__)

METHOD_HTTP = "http"
METHOD_PING = "ping"


@dataclass(frozen=True)
class ConnectivityReport:
    address: str
    port: int
    reachability: Reachability
    method: str
    attempts: int = 1

    @property
    def upstream(self) -> str:
        return format_upstream(self.address, self.port)

    @property
    def warning(self) -> str | None:
        if self.reachability == Reachability.REACHABLE:
            return (
                f"Upstream {self.upstream} is reachable but readiness is unknown "
                "(curl is not available in the proxy)"
            )
        return None


def _is_literal(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


class ConnectivityService(BaseService):
    """Resolve and verify a project's upstream from the proxy's point of view."""

    @property
    def _proxy(self) -> str:
        return self._settings.proxy.container_name

    def resolve_address(self, container: str) -> str:
        """Literal address of *container* on the shared network."""
        network = self._settings.proxy.shared_network
        try:
            return self._retry(
                lambda: self._runtime.network_addresses(container).get(network, ""),
                self._settings.retry.address,
                description=f"resolve {container} on {network}",
                accept=_is_literal,
                retry_on=(ContainerRuntimeError,),
            )
        except RetryExhausted as exc:
            msg = f"Container {container!r} has no address on network {network!r}"
            raise ConnectivityError(
                msg,
                stage=Stage.CONNECTIVITY,
                check="address_resolution",
                detail={"container": container, "network": network, "attempts": exc.attempts},
            ) from exc

    def probe_once(self, address: str, port: int) -> tuple[Reachability, str]:
        """One probe from inside the proxy. Returns ``(reachability, method)``."""
        timeout = str(self._settings.probe.timeout_seconds)
        url = f"http://{format_upstream(address, port)}{self._settings.probe.health_path}"
        result = self._runtime.exec(
            self._proxy, ["curl", "-s", "-f", "-o", "/dev/null", "--max-time", timeout, url]
        )
        if result.ok:
            return Reachability.VERIFIED, METHOD_HTTP
        if not result.command_missing:
            logger.debug("Probe of %s failed (exit %d)", url, result.exit_code)
            return Reachability.UNREACHABLE, METHOD_HTTP

        ping = ["ping", "-c", "1", "-W", timeout, address]
        if ":" in address:
            ping.insert(1, "-6")
        result = self._runtime.exec(self._proxy, ping)
        if result.ok:
            return Reachability.REACHABLE, METHOD_PING
        return Reachability.UNREACHABLE, METHOD_PING

    def verify(self, container: str, port: int | None = None) -> ConnectivityReport:
        """Resolve *container* and confirm it answers from inside the proxy.

        Raises:
            ConnectivityError: Address never appeared, or every probe failed.
        """
        port = port or self._settings.routes.internal_port
        address = self.resolve_address(container)
        attempts = 0

        def probe() -> tuple[Reachability, str]:
            nonlocal attempts
            attempts += 1
            return self.probe_once(address, port)

        try:
            reachability, method = self._retry(
                probe,
                self._settings.retry.connectivity,
                description=f"probe {format_upstream(address, port)}",
                accept=lambda outcome: outcome[0] != Reachability.UNREACHABLE,
                retry_on=(ContainerRuntimeError,),
            )
        except RetryExhausted as exc:
            last = exc.last_value
            method = last[1] if last else METHOD_HTTP
            upstream = format_upstream(address, port)
            msg = f"Upstream {upstream} unreachable from proxy after {exc.attempts} attempts"
            raise ConnectivityError(
                msg,
                stage=Stage.CONNECTIVITY,
                check=f"{method}_probe",
                detail={"upstream": upstream, "attempts": exc.attempts},
            ) from exc

        report = ConnectivityReport(
            address=address, port=port, reachability=reachability, method=method, attempts=attempts
        )
        logger.info("Upstream %s %s via %s", report.upstream, reachability.value, method)
        return report
