"""Network topology: one shared proxy network plus one isolated network per project.

Every operation is idempotent. Re-running a deployment detects and reuses
networks and memberships that already exist.

INVARIANT: A project's container sits on the shared network and on exactly
one isolated network that no other project's container joins.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from edgectl.domain.errors import InfrastructureError
from edgectl.domain.models import NetworkTopology
from edgectl.domain.types import Stage
from edgectl.infrastructure.retry import RetryExhausted
from edgectl.infrastructure.runtime import (
    LABEL_PROJECT,
    LABEL_ROLE,
    ContainerRuntimeError,
)
from edgectl.services.base import BaseService
from edgectl.services.result import ServiceResult
from edgectl.services.telemetry import traced

logger = logging.getLogger(__name__)

ROLE_SHARED = "shared"
ROLE_ISOLATED = "isolated"


def isolated_network_name(project: str) -> str:
    return f"{project}-network"


class TopologyService(BaseService):
    """Create, attach, detach and describe networks."""

    @property
    def shared_network(self) -> str:
        return self._settings.proxy.shared_network

    def _network_op(
        self, fn: Callable[[], object], *, description: str, check: str, network: str
    ) -> None:
        try:
            self._retry(
                fn,
                self._settings.retry.network,
                description=description,
                accept=lambda _: True,
                retry_on=(ContainerRuntimeError,),
            )
        except RetryExhausted as exc:
            msg = f"{description} failed after {exc.attempts} attempts: {exc.last_error}"
            raise InfrastructureError(
                msg, stage=Stage.NETWORK, check=check, detail={"network": network}
            ) from exc

    def _ensure_network(self, name: str, labels: dict[str, str], check: str) -> bool:
        if self._runtime.network_exists(name):
            logger.debug("Network %s already exists", name)
            return False

        def create() -> None:
            # A previous attempt may have succeeded before reporting an error.
            if not self._runtime.network_exists(name):
                self._runtime.create_network(name, labels=labels)

        self._network_op(create, description=f"create network {name}", check=check, network=name)
        logger.info("Created network %s", name)
        return True

    def ensure_shared_network(self) -> bool:
        """Create the shared proxy network if missing. True if created now."""
        return self._ensure_network(
            self.shared_network, {LABEL_ROLE: ROLE_SHARED}, "shared_network"
        )

    def ensure_isolated_network(self, project: str) -> bool:
        """Create *project*'s isolated network if missing. True if created now."""
        return self._ensure_network(
            isolated_network_name(project),
            {LABEL_ROLE: ROLE_ISOLATED, LABEL_PROJECT: project},
            "isolated_network",
        )

    def attach(self, container: str, network: str) -> bool:
        """Connect *container* to *network*. No-op (False) if already attached."""
        if container in self._runtime.network_members(network):
            return False

        def connect() -> None:
            if container not in self._runtime.network_members(network):
                self._runtime.connect(container, network)

        self._network_op(
            connect,
            description=f"attach {container} to {network}",
            check="attach",
            network=network,
        )
        return True

    def detach(self, container: str, network: str) -> bool:
        """Disconnect *container* from *network*. False if it was not attached."""
        if container not in self._runtime.network_members(network):
            return False
        self._network_op(
            lambda: self._runtime.disconnect(container, network),
            description=f"detach {container} from {network}",
            check="detach",
            network=network,
        )
        return True

    def enforce_isolation(self, project: str) -> list[str]:
        """Detach every foreign container from *project*'s isolated network.

        Returns one warning per container detached.
        """
        network = isolated_network_name(project)
        warnings: list[str] = []
        for member in self._runtime.network_members(network):
            if member == project:
                continue
            self.detach(member, network)
            message = f"Detached foreign container {member!r} from isolated network {network!r}"
            logger.warning(message)
            warnings.append(message)
        return warnings

    def remove_isolated_network(self, project: str) -> bool:
        network = isolated_network_name(project)
        if not self._runtime.network_exists(network):
            return False
        self._network_op(
            lambda: self._runtime.remove_network(network),
            description=f"remove network {network}",
            check="remove_network",
            network=network,
        )
        logger.info("Removed network %s", network)
        return True

    def topology(self) -> NetworkTopology:
        isolated = {
            labels[LABEL_PROJECT]: name
            for name, labels in self._runtime.list_networks(label=LABEL_ROLE).items()
            if labels.get(LABEL_ROLE) == ROLE_ISOLATED and LABEL_PROJECT in labels
        }
        return NetworkTopology(shared_network=self.shared_network, isolated=isolated)

    @traced
    def show(self) -> ServiceResult:
        """Describe the shared network, isolated networks, and their members."""
        topo = self.topology()
        runtime = self._runtime
        shared_exists = runtime.network_exists(topo.shared_network)
        networks = [
            {
                "name": topo.shared_network,
                "role": ROLE_SHARED,
                "exists": shared_exists,
                "members": runtime.network_members(topo.shared_network) if shared_exists else [],
            }
        ]
        warnings: list[str] = []
        for project, network in sorted(topo.isolated.items()):
            members = runtime.network_members(network)
            foreign = [m for m in members if m != project]
            if foreign:
                warnings.append(
                    f"Isolated network {network!r} has foreign members: {', '.join(foreign)}"
                )
            networks.append(
                {
                    "name": network,
                    "role": ROLE_ISOLATED,
                    "project": project,
                    "exists": True,
                    "members": members,
                }
            )
        return ServiceResult(
            ok=True,
            op="network_show",
            data={"shared_network": topo.shared_network, "networks": networks},
            warnings=warnings,
        )
