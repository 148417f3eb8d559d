"""Workspace: the handle services receive.

Bundles the resolved settings with lazily constructed infrastructure: the
container runtime, the registry, the route-unit directory, certificate
placement, the configuration lock, and the plugin manager. Constructed once
per CLI invocation and stored on the click context.

Tests build a Workspace with a fake runtime and a no-op sleeper.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from edgectl.infrastructure.certificates import CertificateStore
from edgectl.infrastructure.confdir import RouteDirectory
from edgectl.infrastructure.locking import LOCK_FILENAME, ConfigLock
from edgectl.infrastructure.proxy_layout import ProxyLayout

if TYPE_CHECKING:
    import httpx
    from sqlalchemy.engine import Engine

    from edgectl.config.settings import EdgeSettings
    from edgectl.infrastructure.registry import Registry
    from edgectl.infrastructure.runtime import ContainerRuntime
    from edgectl.plugins.manager import PluginManager

logger = logging.getLogger(__name__)


class Workspace:
    """Settings plus the infrastructure adapters derived from them."""

    def __init__(
        self,
        settings: EdgeSettings,
        *,
        runtime: ContainerRuntime | None = None,
        engine: Engine | None = None,
        sleep: Callable[[float], None] = time.sleep,
        http_transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._runtime = runtime
        self._engine = engine
        self._registry: Registry | None = None
        self._plugins: PluginManager | None = None
        self._lock: ConfigLock | None = None
        self.sleep = sleep
        self.http_transport = http_transport

        template = settings.route_template
        self.layout = ProxyLayout(settings.proxy_dir, template)
        self.routes = RouteDirectory(self.layout.domains_dir)
        self.certificates = CertificateStore(settings.certs_dir, self.layout.certs_dir, template)

    @property
    def settings(self) -> EdgeSettings:
        return self._settings

    @property
    def root(self) -> Path:
        return self._settings.root

    @property
    def runtime(self) -> ContainerRuntime:
        """The container runtime (Docker SDK unless one was injected)."""
        if self._runtime is None:
            from edgectl.infrastructure.runtime import DockerRuntime

            self._runtime = DockerRuntime()
        return self._runtime

    @property
    def registry(self) -> Registry:
        if self._registry is None:
            from edgectl.infrastructure.database.engine import init_database
            from edgectl.infrastructure.database.schema import metadata
            from edgectl.infrastructure.registry import Registry

            if self._engine is None:
                self._engine = init_database(self._settings.state_dir)
            else:
                metadata.create_all(self._engine)
            self._registry = Registry(self._engine)
        return self._registry

    @property
    def lock(self) -> ConfigLock:
        if self._lock is None:
            self._lock = ConfigLock(
                self._settings.state_dir / LOCK_FILENAME,
                self._settings.retry.lock,
                sleep=self.sleep,
            )
        return self._lock

    @property
    def plugins(self) -> PluginManager | None:
        """The plugin manager (None until :meth:`init_plugins` runs)."""
        return self._plugins

    def init_plugins(self) -> list[str]:
        """Discover entry-point and local plugins. Returns loaded names."""
        from edgectl.plugins.manager import PluginManager

        pm = PluginManager()
        names = pm.discover_and_load(local_dir=self._settings.state_dir / "plugins")
        self._plugins = pm
        if names:
            logger.debug("Loaded plugins: %s", ", ".join(names))
        return names

    def use_plugins(self, manager: PluginManager) -> None:
        self._plugins = manager

    def close(self) -> None:
        """Dispose the registry engine, if one was opened."""
        if self._engine is not None:
            self._engine.dispose()
