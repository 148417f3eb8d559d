"""Deployment error kinds.

Each kind names the stage that failed and the specific check that tripped.
Services raise these; the orchestrator turns them into a failed
:class:`~edgectl.services.result.ServiceResult` after compensating teardown.
"""

from __future__ import annotations

from typing import Any, ClassVar


class DeploymentError(Exception):
    """Base for every fatal deployment failure."""

    code: ClassVar[str] = "DEPLOYMENT_ERROR"

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        check: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = str(stage)
        self.check = check
        self.detail: dict[str, Any] = dict(detail or {})

    def to_detail(self) -> dict[str, Any]:
        """Error payload for ``ServiceError.detail``."""
        return {"stage": self.stage, "check": self.check, **self.detail}


class ValidationError(DeploymentError):
    """Bad name, domain, port, or conflicting route. Raised before any mutation."""

    code = "VALIDATION_ERROR"


class InfrastructureError(DeploymentError):
    """Network, container, or proxy-start failure after bounded retries."""

    code = "INFRASTRUCTURE_ERROR"


class ConnectivityError(DeploymentError):
    """Upstream unreachable from the proxy after every probe."""

    code = "CONNECTIVITY_ERROR"


class ConfigurationError(DeploymentError):
    """Proxy syntax validation rejected the staged configuration set."""

    code = "CONFIGURATION_ERROR"


class ReloadError(DeploymentError):
    """A validated configuration failed to go live.

    Always flagged for manual intervention.
    """

    code = "RELOAD_ERROR"

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        check: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, stage=stage, check=check, detail=detail)
        self.detail["manual_intervention"] = True
