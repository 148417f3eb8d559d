"""Container runtime adapter.

:class:`ContainerRuntime` is the narrow interface the deployment services use;
:class:`DockerRuntime` implements it with the ``docker`` SDK, which also speaks
to Podman's Docker-compatible API socket (set ``DOCKER_HOST``).

Addresses are read from the runtime's structured inspect data
(``NetworkSettings.Networks``), never scraped from formatted CLI output, so a
container on several networks or with separator characters in its name always
resolves to one literal address per network.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from edgectl.domain.types import ContainerStatus

if TYPE_CHECKING:
    import docker

logger = logging.getLogger(__name__)

LABEL_PREFIX = "edgectl"
LABEL_ROLE = f"{LABEL_PREFIX}.role"
LABEL_PROJECT = f"{LABEL_PREFIX}.project"
LABEL_DOMAIN = f"{LABEL_PREFIX}.domain"
LABEL_ENVIRONMENT = f"{LABEL_PREFIX}.environment"


class ContainerRuntimeError(Exception):
    """A container runtime call failed."""


@dataclass(frozen=True)
class ExecResult:
    """Result of a command executed inside a running container."""

    exit_code: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def command_missing(self) -> bool:
        """True when the command itself is not installed in the container."""
        if self.exit_code in (126, 127):
            return True
        lowered = self.output.lower()
        return "executable file not found" in lowered or "command not found" in lowered


@dataclass(frozen=True)
class Mount:
    source: Path
    target: str
    read_only: bool = True


@dataclass(frozen=True)
class ContainerSpec:
    """Everything needed to create and start a container."""

    name: str
    image: str
    network: str | None = None
    ports: dict[int, int] = field(default_factory=dict)  # container port -> host port
    mounts: tuple[Mount, ...] = ()
    labels: dict[str, str] = field(default_factory=dict)
    environment: dict[str, str] = field(default_factory=dict)
    restart_policy: str = "unless-stopped"


class ContainerRuntime(Protocol):
    """Operations the deployment core needs from a container runtime."""

    def container_status(self, name: str) -> ContainerStatus: ...

    def container_labels(self, name: str) -> dict[str, str]: ...

    def run_container(self, spec: ContainerSpec) -> None: ...

    def start_container(self, name: str) -> None: ...

    def stop_container(self, name: str, *, timeout: int = 10) -> None: ...

    def remove_container(self, name: str) -> None: ...

    def build_image(
        self, context: Path, tag: str, *, dockerfile: str = "Dockerfile", args: dict[str, str]
    ) -> None: ...

    def network_exists(self, name: str) -> bool: ...

    def create_network(self, name: str, *, labels: dict[str, str]) -> None: ...

    def remove_network(self, name: str) -> None: ...

    def list_networks(self, *, label: str) -> dict[str, dict[str, str]]: ...

    def network_members(self, name: str) -> list[str]: ...

    def connect(self, container: str, network: str) -> None: ...

    def disconnect(self, container: str, network: str) -> None: ...

    def network_addresses(self, container: str) -> dict[str, str]: ...

    def exec(self, container: str, command: list[str]) -> ExecResult: ...

    def logs(self, container: str, *, tail: int = 20) -> str: ...


@contextmanager
def _runtime_call(action: str) -> Iterator[None]:
    """Re-raise SDK and transport failures as :class:`ContainerRuntimeError`."""
    from docker.errors import DockerException
    from requests.exceptions import RequestException

    try:
        yield
    except (DockerException, RequestException) as exc:
        msg = f"Failed to {action}: {exc}"
        raise ContainerRuntimeError(msg) from exc


class DockerRuntime:
    """:class:`ContainerRuntime` backed by the Docker Engine API.

    Every SDK call runs inside :func:`_runtime_call`, so callers only ever
    see :class:`ContainerRuntimeError` (daemon errors, refused connections,
    timeouts alike).
    """

    def __init__(self, client: docker.DockerClient | None = None, *, timeout: int = 60) -> None:
        self._client = client
        self._timeout = timeout

    @property
    def client(self) -> docker.DockerClient:
        """The SDK client (created lazily from the environment)."""
        if self._client is None:
            import docker

            try:
                self._client = docker.from_env(timeout=self._timeout)
            except docker.errors.DockerException as exc:
                msg = f"Cannot connect to the container runtime: {exc}"
                raise ContainerRuntimeError(msg) from exc
        return self._client

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def _get_container(self, name: str) -> Any | None:
        from docker.errors import NotFound

        with _runtime_call(f"inspect container {name!r}"):
            try:
                return self.client.containers.get(name)
            except NotFound:
                return None

    def container_status(self, name: str) -> ContainerStatus:
        container = self._get_container(name)
        if container is None:
            return ContainerStatus.ABSENT
        if container.status == "running":
            return ContainerStatus.RUNNING
        return ContainerStatus.STOPPED

    def container_labels(self, name: str) -> dict[str, str]:
        container = self._get_container(name)
        if container is None:
            return {}
        return dict(container.attrs.get("Config", {}).get("Labels") or {})

    def run_container(self, spec: ContainerSpec) -> None:
        volumes = {
            str(m.source): {"bind": m.target, "mode": "ro" if m.read_only else "rw"}
            for m in spec.mounts
        }
        with _runtime_call(f"run container {spec.name!r}"):
            self.client.containers.run(
                spec.image,
                name=spec.name,
                detach=True,
                network=spec.network,
                ports={f"{inner}/tcp": outer for inner, outer in spec.ports.items()},
                volumes=volumes,
                labels=spec.labels,
                environment=spec.environment,
                restart_policy={"Name": spec.restart_policy},
            )
        logger.debug("Started container %s from %s", spec.name, spec.image)

    def start_container(self, name: str) -> None:
        container = self._require_container(name)
        with _runtime_call(f"start container {name!r}"):
            container.start()

    def stop_container(self, name: str, *, timeout: int = 10) -> None:
        container = self._get_container(name)
        if container is None:
            return
        with _runtime_call(f"stop container {name!r}"):
            container.stop(timeout=timeout)

    def remove_container(self, name: str) -> None:
        container = self._get_container(name)
        if container is None:
            return
        with _runtime_call(f"remove container {name!r}"):
            container.remove(force=True)

    def build_image(
        self,
        context: Path,
        tag: str,
        *,
        dockerfile: str = "Dockerfile",
        args: dict[str, str],
    ) -> None:
        with _runtime_call(f"build image {tag!r} from {context}"):
            self.client.images.build(
                path=str(context), dockerfile=dockerfile, tag=tag, buildargs=args, rm=True
            )

    def _require_container(self, name: str) -> Any:
        container = self._get_container(name)
        if container is None:
            msg = f"Container not found: {name!r}"
            raise ContainerRuntimeError(msg)
        return container

    # ------------------------------------------------------------------
    # Networks
    # ------------------------------------------------------------------

    def _get_network(self, name: str) -> Any | None:
        from docker.errors import NotFound

        with _runtime_call(f"inspect network {name!r}"):
            try:
                return self.client.networks.get(name)
            except NotFound:
                return None

    def network_exists(self, name: str) -> bool:
        return self._get_network(name) is not None

    def create_network(self, name: str, *, labels: dict[str, str]) -> None:
        with _runtime_call(f"create network {name!r}"):
            self.client.networks.create(name, driver="bridge", labels=labels)

    def remove_network(self, name: str) -> None:
        network = self._get_network(name)
        if network is None:
            return
        with _runtime_call(f"remove network {name!r}"):
            network.remove()

    def list_networks(self, *, label: str) -> dict[str, dict[str, str]]:
        with _runtime_call(f"list networks labelled {label!r}"):
            found = self.client.networks.list(filters={"label": label})
        return {n.name: dict(n.attrs.get("Labels") or {}) for n in found}

    def network_members(self, name: str) -> list[str]:
        network = self._get_network(name)
        if network is None:
            return []
        with _runtime_call(f"inspect network {name!r}"):
            network.reload()
        containers = network.attrs.get("Containers") or {}
        return sorted(info.get("Name", cid) for cid, info in containers.items())

    def connect(self, container: str, network: str) -> None:
        net = self._get_network(network)
        if net is None:
            msg = f"Network not found: {network!r}"
            raise ContainerRuntimeError(msg)
        with _runtime_call(f"attach {container!r} to {network!r}"):
            net.connect(container)

    def disconnect(self, container: str, network: str) -> None:
        net = self._get_network(network)
        if net is None:
            return
        with _runtime_call(f"detach {container!r} from {network!r}"):
            net.disconnect(container, force=True)

    def network_addresses(self, container: str) -> dict[str, str]:
        """Map network name to the container's literal address on that network.

        Networks without an assigned address yet are omitted.
        """
        found = self._get_container(container)
        if found is None:
            return {}
        with _runtime_call(f"inspect container {container!r}"):
            found.reload()
        networks = found.attrs.get("NetworkSettings", {}).get("Networks") or {}
        addresses: dict[str, str] = {}
        for name, settings in networks.items():
            address = settings.get("IPAddress") or settings.get("GlobalIPv6Address") or ""
            if address:
                addresses[name] = address
        return addresses

    # ------------------------------------------------------------------
    # Exec and logs
    # ------------------------------------------------------------------

    def exec(self, container: str, command: list[str]) -> ExecResult:
        from docker.errors import APIError

        target = self._require_container(container)
        with _runtime_call(f"exec {command[0]!r} in {container!r}"):
            try:
                exit_code, output = target.exec_run(command, stdout=True, stderr=True)
            except APIError as exc:
                # Some runtimes report a missing binary as an API error instead of exit 127.
                message = str(exc)
                if "executable file not found" in message or "no such file" in message.lower():
                    return ExecResult(exit_code=127, output=message)
                raise
        text = output.decode("utf-8", errors="replace") if output else ""
        return ExecResult(exit_code=exit_code if exit_code is not None else 1, output=text)

    def logs(self, container: str, *, tail: int = 20) -> str:
        target = self._get_container(container)
        if target is None:
            return ""
        with _runtime_call(f"read logs of {container!r}"):
            raw = target.logs(tail=tail)
        return raw.decode("utf-8", errors="replace")
