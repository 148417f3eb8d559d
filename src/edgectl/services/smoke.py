"""Post-publish smoke tests through the proxy's published ports.

Three probes, each retried with a short capped-linear backoff:

- plaintext request for the new domain answers 301 to ``https://<domain>``
- secure health endpoint for the new domain answers 200
- secure health endpoint of one previously published domain still answers 200

Requests carry the domain in the ``Host`` header and as the TLS SNI name,
so the proxy picks the right server block while the client talks to a
loopback address.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

import httpx

from edgectl import __version__
from edgectl.infrastructure.retry import RetryExhausted
from edgectl.services.base import BaseService

logger = logging.getLogger(__name__)

USER_AGENT = f"edgectl-smoke/{__version__}"


@dataclass
class ProbeOutcome:
    name: str
    domain: str
    url: str
    expected: int
    status: int | None = None
    location: str | None = None
    error: str | None = None
    ok: bool = False

    def describe(self) -> str:
        got = self.error or f"HTTP {self.status}"
        return f"{self.name} for {self.domain}: expected {self.expected}, got {got}"


class SmokeProber(BaseService):
    """Probe a freshly published domain and one existing neighbour."""

    def _client(self) -> httpx.Client:
        return httpx.Client(
            verify=False,
            timeout=float(self._settings.probe.timeout_seconds),
            follow_redirects=False,
            headers={"User-Agent": USER_AGENT},
            transport=self._workspace.http_transport,
        )

    def _request(self, client: httpx.Client, outcome: ProbeOutcome) -> ProbeOutcome:
        secure = outcome.url.startswith("https://")
        extensions = {"sni_hostname": outcome.domain} if secure else {}
        try:
            response = client.get(
                outcome.url, headers={"Host": outcome.domain}, extensions=extensions
            )
        except httpx.HTTPError as exc:
            outcome.error = f"{type(exc).__name__}: {exc}"
            outcome.status = None
            outcome.ok = False
            return outcome
        outcome.error = None
        outcome.status = response.status_code
        outcome.location = response.headers.get("location")
        outcome.ok = response.status_code == outcome.expected
        if outcome.ok and outcome.expected == 301:
            target = f"https://{outcome.domain}"
            outcome.ok = (outcome.location or "").startswith(target)
            if not outcome.ok:
                outcome.error = f"redirect to {outcome.location!r}, not {target}"
        return outcome

    def _probe(self, client: httpx.Client, outcome: ProbeOutcome) -> ProbeOutcome:
        try:
            return self._retry(
                lambda: self._request(client, outcome),
                self._settings.retry.smoke,
                description=f"smoke {outcome.name} {outcome.domain}",
                accept=lambda result: result.ok,
            )
        except RetryExhausted:
            return outcome

    def run(self, domain: str, *, neighbour: str | None = None) -> list[ProbeOutcome]:
        """Probe *domain* and, if given, one previously published *neighbour*."""
        host = self._settings.smoke.host
        proxy = self._settings.proxy
        health = self._settings.probe.health_path
        plain_url = f"http://{host}:{proxy.http_port}/"
        secure_url = f"https://{host}:{proxy.https_port}{health}"
        probes = [
            ProbeOutcome("redirect", domain, plain_url, 301),
            ProbeOutcome("secure_health", domain, secure_url, 200),
        ]
        if neighbour is not None:
            probes.append(ProbeOutcome("regression", neighbour, secure_url, 200))
        with self._client() as client:
            results = [self._probe(client, p) for p in probes]
        for result in results:
            if not result.ok:
                logger.warning("Smoke probe failed: %s", result.describe())
        return results


def outcomes_to_dicts(outcomes: list[ProbeOutcome]) -> list[dict[str, object]]:
    return [asdict(o) for o in outcomes]
