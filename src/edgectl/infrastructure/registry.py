"""Deployment registry: projects, published routes, attempt history."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, desc, insert, select, update
from sqlalchemy.engine import Engine

from edgectl.domain.models import DeploymentAttempt, Project
from edgectl.infrastructure.database.schema import deployments, projects, routes


def _now() -> str:
    return datetime.now(UTC).isoformat()


class Registry:
    """Encapsulates SQL for the project and route index."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def get_project(self, name: str) -> dict[str, Any] | None:
        stmt = select(projects).where(projects.c.name == name)
        with self._engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return dict(row) if row is not None else None

    def project_for_domain(self, domain: str) -> str | None:
        stmt = select(projects.c.name).where(projects.c.domain == domain)
        with self._engine.connect() as conn:
            return conn.execute(stmt).scalar_one_or_none()

    def list_projects(self) -> list[dict[str, Any]]:
        stmt = select(projects).order_by(projects.c.name)
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [dict(row) for row in rows]

    def save_project(self, project: Project) -> None:
        """Insert or update the row for *project*."""
        now = _now()
        values = {
            "domain": project.domain,
            "host_port": project.host_port,
            "internal_port": project.internal_port,
            "environment": project.environment.value,
            "image": project.image,
            "network": project.isolated_network,
            "modified": now,
        }
        with self._engine.begin() as conn:
            exists = conn.execute(
                select(projects.c.name).where(projects.c.name == project.name)
            ).first()
            if exists is None:
                conn.execute(insert(projects).values(name=project.name, created=now, **values))
            else:
                conn.execute(
                    update(projects).where(projects.c.name == project.name).values(**values)
                )

    def delete_project(self, name: str) -> None:
        """Remove the project row and any routes it owns."""
        with self._engine.begin() as conn:
            conn.execute(delete(routes).where(routes.c.project == name))
            conn.execute(delete(projects).where(projects.c.name == name))

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def record_route(
        self,
        *,
        domain: str,
        project: str,
        upstream: str,
        digest: str,
        cert_path: str | None = None,
        reachability: str | None = None,
    ) -> None:
        values = {
            "project": project,
            "upstream": upstream,
            "digest": digest,
            "cert_path": cert_path,
            "reachability": reachability,
            "applied": _now(),
        }
        with self._engine.begin() as conn:
            conn.execute(delete(routes).where(routes.c.domain == domain))
            conn.execute(insert(routes).values(domain=domain, **values))

    def get_route(self, domain: str) -> dict[str, Any] | None:
        stmt = select(routes).where(routes.c.domain == domain)
        with self._engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return dict(row) if row is not None else None

    def list_routes(self) -> list[dict[str, Any]]:
        stmt = select(routes).order_by(routes.c.domain)
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [dict(row) for row in rows]

    def delete_route(self, domain: str) -> None:
        with self._engine.begin() as conn:
            conn.execute(delete(routes).where(routes.c.domain == domain))

    # ------------------------------------------------------------------
    # Deployment history
    # ------------------------------------------------------------------

    def record_attempt(
        self,
        attempt: DeploymentAttempt,
        *,
        started: str,
        error_code: str | None = None,
    ) -> int:
        """Append one attempt to the history. Returns the new row id."""
        with self._engine.begin() as conn:
            result = conn.execute(
                insert(deployments).values(
                    project=attempt.project,
                    domain=attempt.domain or None,
                    operation=attempt.operation.value,
                    outcome=attempt.outcome.value,
                    failed_stage=attempt.failed_stage,
                    error_code=error_code,
                    rolled_back=int(attempt.rolled_back),
                    steps=json.dumps(attempt.steps),
                    warnings=json.dumps(attempt.warnings),
                    started=started,
                    finished=_now(),
                )
            )
            return int(result.inserted_primary_key[0])

    def history(self, *, project: str | None = None, limit: int = 20) -> list[dict[str, Any]]:
        stmt = select(deployments).order_by(desc(deployments.c.id)).limit(limit)
        if project is not None:
            stmt = stmt.where(deployments.c.project == project)
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        items = []
        for row in rows:
            item = dict(row)
            item["steps"] = json.loads(item["steps"] or "[]")
            item["warnings"] = json.loads(item["warnings"] or "[]")
            item["rolled_back"] = bool(item["rolled_back"])
            items.append(item)
        return items
