"""Outbound HTTP client with timeout, exponential backoff and transient retry.

Retries on 429, any 5xx and transport errors (including timeouts). Other 4xx
responses are returned immediately for the caller to handle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from clipforge.services.errors import NetworkError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 5
DEFAULT_BASE_DELAY = 2.0


def is_retriable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class RetryClient:
    """Thin retry layer over a shared ``httpx.AsyncClient``.

    An always-failing call is sent ``1 + max_retries`` times; the delay before
    retry ``n`` (0-based) is ``base_delay * 2**n`` seconds.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._own_client = http_client is None
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep

    def backoff_delay(self, retry_count: int) -> float:
        return self.base_delay * (2 ** retry_count)

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send ``request``, retrying transient failures.

        Returns the last response when status retries run out and raises
        ``NetworkError`` when transport retries run out.
        """
        retries = 0
        while True:
            try:
                response = await self._client.send(request)
            except httpx.TransportError as e:
                if retries >= self.max_retries:
                    logger.error(
                        "%s %s failed after %d retries: %s",
                        request.method, request.url, retries, e,
                    )
                    raise NetworkError(
                        f"{request.method} {request.url} failed: {e}"
                    ) from e
                delay = self.backoff_delay(retries)
                logger.warning(
                    "Network error on %s %s (%s), retrying in %.1fs (retry %d/%d)",
                    request.method, request.url, type(e).__name__,
                    delay, retries + 1, self.max_retries,
                )
                await self._sleep(delay)
                retries += 1
                continue

            if is_retriable_status(response.status_code) and retries < self.max_retries:
                delay = self.backoff_delay(retries)
                logger.warning(
                    "HTTP %d from %s %s, retrying in %.1fs (retry %d/%d)",
                    response.status_code, request.method, request.url,
                    delay, retries + 1, self.max_retries,
                )
                await response.aclose()
                await self._sleep(delay)
                retries += 1
                continue

            return response

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Build a request on the shared client and send it with retries."""
        request = self._client.build_request(method, url, timeout=self.timeout, **kwargs)
        return await self.send(request)

    async def aclose(self) -> None:
        if self._own_client:
            await self._client.aclose()
