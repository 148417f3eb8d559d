"""SQLite registry engine and schema via SQLAlchemy Core."""

from edgectl.infrastructure.database.engine import create_db_engine, init_database
from edgectl.infrastructure.database.schema import deployments, metadata, projects, routes

__all__ = [
    "create_db_engine",
    "deployments",
    "init_database",
    "metadata",
    "projects",
    "routes",
]
