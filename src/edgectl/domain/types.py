"""Classification enums shared across the deployment pipeline."""

from __future__ import annotations

from enum import StrEnum


class ProxyState(StrEnum):
    """Observed state of the shared reverse-proxy container."""

    ABSENT = "absent"
    STOPPED = "stopped"
    RUNNING = "running"


class ContainerStatus(StrEnum):
    """Coarse container status reported by the runtime adapter."""

    ABSENT = "absent"
    STOPPED = "stopped"
    RUNNING = "running"


class EnvironmentClass(StrEnum):
    """Deployment environment class.

    ``dev`` may fall back to the generic certificate pair; ``pro`` requires
    domain-specific certificate material.
    """

    DEV = "dev"
    PRO = "pro"


class Reachability(StrEnum):
    """Outcome of the connectivity verifier."""

    VERIFIED = "verified"
    REACHABLE = "reachable"  # reachable, readiness unknown
    UNREACHABLE = "unreachable"


class Stage(StrEnum):
    """Named stages of a deployment run, used in error reports."""

    VALIDATE = "validate"
    PROXY = "proxy"
    NETWORK = "network"
    CONTAINER = "container"
    CERTIFICATES = "certificates"
    CONNECTIVITY = "connectivity"
    COMPILE = "compile"
    APPLY = "apply"
    SMOKE_TEST = "smoke_test"
    TEARDOWN = "teardown"


class Operation(StrEnum):
    """Top-level operations recorded in the deployment history."""

    DEPLOY = "deploy"
    REMOVE = "remove"


class Outcome(StrEnum):
    """Final outcome of a deployment attempt."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
