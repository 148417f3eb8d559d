"""Configuration lock guarding the route-unit directory.

Two deployments touching the proxy configuration must never interleave
stage -> validate -> reload. The lock combines an in-process re-entrant lock
with an exclusive ``flock`` on ``<state_dir>/config.lock`` so concurrent
edgectl processes on the same host also serialize.
"""

from __future__ import annotations

import fcntl
import logging
import os
import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import IO

from edgectl.domain.errors import InfrastructureError
from edgectl.domain.types import Stage
from edgectl.infrastructure.retry import Backoff, RetryExhausted, retry

logger = logging.getLogger(__name__)

LOCK_FILENAME = "config.lock"


class ConfigLock:
    """Re-entrant, cross-process exclusive lock.

    Nested ``hold()`` calls from the same thread only take the file lock
    once.
    """

    def __init__(
        self,
        path: Path,
        policy: Backoff,
        *,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.path = path
        self._policy = policy
        self._sleep = sleep
        self._thread_lock = threading.RLock()
        self._handle: IO[str] | None = None
        self._depth = 0

    def _try_flock(self) -> bool:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = self.path.open("a+", encoding="utf-8")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            handle.close()
            return False
        handle.seek(0)
        handle.truncate()
        handle.write(f"{os.getpid()}\n")
        handle.flush()
        self._handle = handle
        return True

    def _release_flock(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()

    def acquire(self) -> None:
        self._thread_lock.acquire()
        if self._depth == 0:
            kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
            try:
                retry(self._try_flock, self._policy, description="config lock", **kwargs)
            except RetryExhausted as exc:
                self._thread_lock.release()
                msg = f"Timed out waiting for the configuration lock at {self.path}"
                raise InfrastructureError(
                    msg,
                    stage=Stage.APPLY,
                    check="config_lock",
                    detail={"lock": str(self.path), "attempts": exc.attempts},
                ) from exc
            logger.debug("Acquired configuration lock %s", self.path)
        self._depth += 1

    def release(self) -> None:
        self._depth -= 1
        if self._depth == 0:
            self._release_flock()
            logger.debug("Released configuration lock %s", self.path)
        self._thread_lock.release()

    @property
    def held(self) -> bool:
        return self._depth > 0

    @contextmanager
    def hold(self) -> Generator[None]:
        self.acquire()
        try:
            yield
        finally:
            self.release()
