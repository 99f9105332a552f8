"""Declarative retry policy for provider requests.

Wraps tenacity so the fetch loop states *what* the policy is (attempts,
backoff) instead of hand-rolling counters, and so tests can swap the sleep
function for an instant fake.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.hubsync.sync.errors import AuthRefreshError

logger = structlog.get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class RetryPolicy(BaseModel):
    """Attempts and backoff for one provider request.

    The delay before retry ``n`` (n starting at 1) is
    ``base_delay_seconds * 2**n``: 10s, 20s, 40s, 80s with the defaults.
    AuthRefreshError is never retried.
    """

    max_attempts: int = 5
    base_delay_seconds: float = 5.0

    def delay_for(self, retry_number: int) -> float:
        return self.base_delay_seconds * 2**retry_number

    def build(
        self,
        sleep: SleepFn = asyncio.sleep,
        before_sleep: Callable[[RetryCallState], None] | None = None,
    ) -> AsyncRetrying:
        """Create a fresh AsyncRetrying controller for one request."""
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            # tenacity counts from the failed attempt (1), so double the base
            wait=wait_exponential(multiplier=self.base_delay_seconds * 2, exp_base=2),
            retry=retry_if_not_exception_type(AuthRefreshError),
            sleep=sleep,
            before_sleep=before_sleep,
            reraise=False,
        )


def log_before_retry(operation: str, **context: object) -> Callable[[RetryCallState], None]:
    """Build a before_sleep hook that logs each retry with structured context."""

    def _log(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "retry.scheduled",
            operation=operation,
            attempt=retry_state.attempt_number,
            delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(exc) if exc else None,
            **context,
        )

    return _log
