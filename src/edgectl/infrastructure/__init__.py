"""Infrastructure layer — container runtime, route-unit directory, locks, registry.

This layer depends on stdlib, domain, and third-party libs (docker, SQLAlchemy).
It must never import from services, commands, or output.
"""
