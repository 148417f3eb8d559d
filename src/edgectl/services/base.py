"""BaseService: common foundation for edgectl services.

Every service receives a :class:`Workspace` at construction time, which
provides the container runtime, registry, route-unit directory and
configuration lock.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from edgectl.infrastructure.retry import Backoff, retry

if TYPE_CHECKING:
    from edgectl.config.settings import EdgeSettings
    from edgectl.infrastructure.runtime import ContainerRuntime
    from edgectl.infrastructure.workspace import Workspace

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class BaseService:
    """Base for all service-layer classes.

    Usage::

        class ProxyService(BaseService):
            def health(self) -> ServiceResult:
                probe = self._retry(self._probe, self._settings.retry.proxy_health, ...)
    """

    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace

    @property
    def _settings(self) -> EdgeSettings:
        return self._workspace.settings

    @property
    def _runtime(self) -> ContainerRuntime:
        return self._workspace.runtime

    def _retry(
        self,
        fn: Callable[[], _T],
        policy: Backoff,
        *,
        description: str,
        accept: Callable[[_T], bool] = bool,
        retry_on: tuple[type[BaseException], ...] = (),
    ) -> _T:
        """:func:`retry` using the workspace's sleeper."""
        return retry(
            fn,
            policy,
            description=description,
            accept=accept,
            retry_on=retry_on,
            sleep=self._workspace.sleep,
        )

    def _dispatch_event(
        self,
        hook_name: str,
        payload: dict[str, Any],
        warnings: list[str],
    ) -> None:
        """Call a plugin hook. No-op if plugins are not initialized.

        INVARIANT: Plugin failures are warnings, never errors.
        """
        plugins = self._workspace.plugins
        if plugins is None:
            return
        try:
            plugins.dispatch(hook_name, payload)
        except Exception:
            logger.debug("Plugin hook %s failed", hook_name, exc_info=True)
            warnings.append(f"Plugin hook {hook_name} failed")
