"""
Base payment client implementing shared concerns: http, retry, logging.

Concrete providers subclass and implement provider-specific logic.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from core.logging_config import get_logger
from infrastructure.external.payments.retry import RetryPolicy


logger = get_logger(__name__)

T = TypeVar("T")


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        retry: Optional[RetryPolicy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.retry_policy = retry or RetryPolicy()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = http_client

    @staticmethod
    def timeout(seconds: float) -> httpx.Timeout:
        return httpx.Timeout(seconds, connect=min(seconds, 5.0))

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport)
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[T]], context: str) -> T:
        return await self.retry_policy.execute(fn, context)

    async def _send(self, method: str, url: str, *, timeout: float, **kwargs: Any) -> httpx.Response:
        """Send one request; non-2xx responses raise httpx.HTTPStatusError."""
        async with self.client() as http:
            resp = await http.request(method, url, timeout=self.timeout(timeout), **kwargs)
        resp.raise_for_status()
        return resp

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
