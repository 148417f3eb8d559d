"""SQLAlchemy Core table definitions for the edgectl registry.

The route-unit directory stays authoritative for what the proxy serves;
these tables index it for lookups by project and keep the history of
deployment attempts.
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
)

metadata = MetaData()

projects = Table(
    "projects",
    metadata,
    Column("name", Text, primary_key=True),
    Column("domain", Text, nullable=False, unique=True),
    Column("host_port", Integer, nullable=False),
    Column("internal_port", Integer, nullable=False, default=80, server_default="80"),
    Column("environment", Text, nullable=False),
    Column("image", Text),
    Column("network", Text, nullable=False),  # isolated network name
    Column("created", Text, nullable=False),
    Column("modified", Text, nullable=False),
)

routes = Table(
    "routes",
    metadata,
    Column("domain", Text, primary_key=True),
    Column("project", Text, ForeignKey("projects.name"), nullable=False),
    Column("upstream", Text, nullable=False),  # ADDR:PORT literal
    Column("digest", Text, nullable=False),  # sha256 of the rendered unit
    Column("cert_path", Text),
    Column("reachability", Text),
    Column("applied", Text, nullable=False),
)

deployments = Table(
    "deployments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project", Text, nullable=False),
    Column("domain", Text),
    Column("operation", Text, nullable=False),
    Column("outcome", Text, nullable=False),
    Column("failed_stage", Text),
    Column("error_code", Text),
    Column("rolled_back", Integer, default=0, server_default="0"),
    Column("steps", Text),  # JSON array
    Column("warnings", Text),  # JSON array
    Column("started", Text, nullable=False),
    Column("finished", Text),
)

Index("ix_routes_project", routes.c.project)
Index("ix_deployments_project", deployments.c.project)
