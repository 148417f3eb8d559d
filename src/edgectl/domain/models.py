"""Pydantic models for the deployment data model.

Frozen models describe observed or requested state; :class:`DeploymentAttempt`
is the one mutable record, owned by a single orchestrator run.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from edgectl.domain.types import EnvironmentClass, Operation, Outcome, ProxyState


class ProxyInstance(BaseModel):
    """Observed state of the shared proxy."""

    model_config = {"frozen": True}

    name: str
    state: ProxyState
    networks: list[str] = Field(default_factory=list)
    ports: list[int] = Field(default_factory=list)


class CertificateRef(BaseModel):
    """Certificate material for one domain.

    ``host_*`` paths live on the machine running edgectl; ``cert_path`` and
    ``key_path`` are the paths the compiled route references inside the proxy.
    """

    model_config = {"frozen": True}

    domain: str
    cert_path: str
    key_path: str
    host_cert_path: str = ""
    host_key_path: str = ""


class Project(BaseModel):
    """A project deployment request, resolved against configuration."""

    model_config = {"frozen": True}

    name: str
    domain: str
    host_port: int
    internal_port: int = 80
    environment: EnvironmentClass = EnvironmentClass.DEV
    image: str = ""

    @property
    def container_name(self) -> str:
        return self.name

    @property
    def isolated_network(self) -> str:
        return f"{self.name}-network"

    @property
    def server_names(self) -> tuple[str, str]:
        return self.domain, f"www.{self.domain}"


class BuildParams(BaseModel):
    """Optional image build parameters passed through to the runtime."""

    model_config = {"frozen": True}

    context: str
    dockerfile: str = "Dockerfile"
    args: dict[str, str] = Field(default_factory=dict)


class NetworkTopology(BaseModel):
    """The shared network plus one isolated network per project."""

    model_config = {"frozen": True}

    shared_network: str
    isolated: dict[str, str] = Field(default_factory=dict)


class DeploymentAttempt(BaseModel):
    """Progress record for one orchestrator run."""

    project: str
    domain: str = ""
    operation: Operation = Operation.DEPLOY
    steps: list[str] = Field(default_factory=list)
    created: list[dict[str, str]] = Field(default_factory=list)
    outcome: Outcome = Outcome.PENDING
    failed_stage: str | None = None
    rolled_back: bool = False
    warnings: list[str] = Field(default_factory=list)

    def complete(self, step: str) -> None:
        self.steps.append(step)

    def track(self, kind: str, name: str) -> None:
        """Record a resource created by this run, for compensating teardown."""
        self.created.append({"kind": kind, "name": name})

    def summary(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
