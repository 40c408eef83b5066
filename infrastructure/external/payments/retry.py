"""
Exponential backoff executor for idempotent outbound calls.

Every failure is retried the same way up to the attempt cap: the policy does
not look at the error type, and there is no jitter. Callers that are not
naturally idempotent (payment creation) make themselves so with an
idempotency key reused across attempts.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_never,
    stop_after_attempt,
    wait_exponential,
)

from core.logging_config import get_logger
from core.settings import PaymentRetry


logger = get_logger(__name__)

T = TypeVar("T")
SleepFn = Callable[[float], Awaitable[Any]]


class RetryPolicy:
    def __init__(
        self,
        *,
        max_attempts: int = 5,
        initial_delay_ms: int = 2000,
        backoff_multiplier: float = 2,
        max_delay_ms: int = 60000,
        should_retry_errors: bool = True,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        self.max_attempts = max(1, int(max_attempts))
        self.initial_delay_ms = initial_delay_ms
        self.backoff_multiplier = backoff_multiplier
        self.max_delay_ms = max_delay_ms
        self.should_retry_errors = should_retry_errors
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def from_settings(cls, cfg: PaymentRetry, **kwargs: Any) -> "RetryPolicy":
        return cls(
            max_attempts=cfg.max_attempts,
            initial_delay_ms=cfg.initial_delay_ms,
            backoff_multiplier=cfg.backoff_multiplier,
            max_delay_ms=cfg.max_delay_ms,
            should_retry_errors=cfg.should_retry_errors,
            **kwargs,
        )

    def _retrying(self, context: str) -> AsyncRetrying:
        def _before_sleep(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            logger.warning(
                "retry_scheduled",
                context=context,
                attempt=state.attempt_number,
                max_attempts=self.max_attempts,
                next_delay_ms=int((state.next_action.sleep if state.next_action else 0) * 1000),
                error=str(exc),
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.initial_delay_ms / 1000,
                exp_base=self.backoff_multiplier,
                min=0,
                max=self.max_delay_ms / 1000,
            ),
            retry=retry_if_exception_type(Exception) if self.should_retry_errors else retry_never,
            before_sleep=_before_sleep,
            sleep=self._sleep,
            reraise=True,
        )

    async def execute(self, operation: Callable[[], Awaitable[T]], context: str = "Operation") -> T:
        """Run `operation` until it succeeds or the policy gives up.

        The last error is re-raised unchanged; earlier ones are only logged.
        """
        attempt_no = 0
        try:
            async for attempt in self._retrying(context):
                with attempt:
                    attempt_no = attempt.retry_state.attempt_number
                    return await operation()
        except Exception as exc:
            logger.error(
                "retry_exhausted",
                context=context,
                attempt=attempt_no,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise
        raise RuntimeError("retry loop ended without a result")  # pragma: no cover
