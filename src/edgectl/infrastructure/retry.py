"""Bounded retry with fixed or capped-linear backoff.

Every polling point in a deployment run goes through :func:`retry`:
container start, network operations, address resolution, health probes,
smoke probes, and lock acquisition. Each call site supplies its own
:class:`Backoff`, so a loop always terminates within
``attempts`` calls and :meth:`Backoff.budget` seconds of sleeping.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class Backoff(BaseModel):
    """Retry policy: attempt ceiling plus a delay function.

    ``step == 0`` gives a fixed delay; ``step > 0`` grows the delay linearly
    per attempt up to ``max_delay``.
    """

    model_config = {"frozen": True}

    attempts: int = Field(default=5, ge=1)
    delay: float = Field(default=1.0, ge=0.0)
    step: float = Field(default=0.0, ge=0.0)
    max_delay: float | None = None

    def delay_for(self, attempt: int) -> float:
        """Delay after the *attempt*-th failure (1-based)."""
        value = self.delay + self.step * (attempt - 1)
        if self.max_delay is not None:
            value = min(value, self.max_delay)
        return value

    def budget(self) -> float:
        """Upper bound on total sleep time across all attempts."""
        return sum(self.delay_for(i) for i in range(1, self.attempts))


class RetryExhausted(Exception):
    """Raised when every attempt failed.

    Carries the last returned value (when the predicate rejected it) or the
    last exception (when the call raised a retryable error).
    """

    def __init__(
        self,
        description: str,
        attempts: int,
        *,
        last_value: Any = None,
        last_error: BaseException | None = None,
    ) -> None:
        reason = f": {last_error}" if last_error is not None else ""
        super().__init__(f"{description} failed after {attempts} attempts{reason}")
        self.description = description
        self.attempts = attempts
        self.last_value = last_value
        self.last_error = last_error


@dataclass
class _Attempt:
    number: int
    value: Any = None
    error: BaseException | None = None


def _accept_truthy(value: Any) -> bool:
    return bool(value)


def retry(
    fn: Callable[[], _T],
    policy: Backoff,
    *,
    description: str = "operation",
    accept: Callable[[_T], bool] = _accept_truthy,
    retry_on: tuple[type[BaseException], ...] = (),
    sleep: Callable[[float], None] = time.sleep,
) -> _T:
    """Call *fn* until *accept* approves its result or attempts run out.

    Exceptions listed in *retry_on* count as a failed attempt; any other
    exception propagates immediately.

    Raises:
        RetryExhausted: After ``policy.attempts`` failed attempts.
    """
    last = _Attempt(number=0)
    for number in range(1, policy.attempts + 1):
        last = _Attempt(number=number)
        try:
            last.value = fn()
        except retry_on as exc:
            last.error = exc
        else:
            if accept(last.value):
                return last.value

        logger.debug(
            "%s: attempt %d/%d failed%s",
            description,
            number,
            policy.attempts,
            f" ({last.error})" if last.error is not None else "",
        )
        if number < policy.attempts:
            sleep(policy.delay_for(number))

    raise RetryExhausted(
        description,
        policy.attempts,
        last_value=last.value,
        last_error=last.error,
    )
