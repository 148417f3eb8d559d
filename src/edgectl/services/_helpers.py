"""Shared service-layer helper functions."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from edgectl.domain.errors import DeploymentError
from edgectl.services.result import ServiceError, ServiceResult


def now_iso() -> str:
    """Current UTC time as ISO 8601 (deployment history timestamps)."""
    return datetime.now(UTC).isoformat()


def tail_lines(text: str, limit: int = 20) -> list[str]:
    """Last *limit* non-empty lines of *text*.

    Examples:
        >>> tail_lines("a\\n\\nb\\nc\\n", 2)
        ['b', 'c']
    """
    lines = [line for line in text.splitlines() if line.strip()]
    return lines[-limit:] if limit > 0 else []


def failure(
    op: str,
    exc: DeploymentError,
    *,
    data: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> ServiceResult:
    """Failed ServiceResult whose error detail names the stage and check."""
    return ServiceResult(
        ok=False,
        op=op,
        data=data or {},
        warnings=warnings or [],
        error=ServiceError(code=exc.code, message=exc.message, detail=exc.to_detail()),
    )
