"""Morpho GraphQL client."""

import asyncio
import time
from typing import Any

import httpx
from loguru import logger

from vaultrisk.config import settings
from vaultrisk.exceptions import MorphoAPIError


class RateLimiter:
    """Bounds concurrent requests and spaces them by a minimum delay."""

    def __init__(self, max_concurrent: int = 5, request_delay_ms: int = 0):
        """
        Initialize rate limiter.

        Args:
            max_concurrent: Maximum number of in-flight requests
            request_delay_ms: Minimum delay between request starts in milliseconds
        """
        self.request_delay_sec = request_delay_ms / 1000.0
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.last_request_time: float | None = None
        self.lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a request can be made within limits."""
        await self.semaphore.acquire()

        async with self.lock:
            if self.last_request_time is not None and self.request_delay_sec > 0:
                elapsed = time.monotonic() - self.last_request_time
                wait_time = self.request_delay_sec - elapsed
                if wait_time > 0:
                    await asyncio.sleep(wait_time)
            self.last_request_time = time.monotonic()

    def release(self) -> None:
        """Release the semaphore after request completes."""
        self.semaphore.release()

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()


class MorphoClient:
    """
    Async HTTP client for the Morpho GraphQL API.

    Every failure (transport, non-2xx status, GraphQL errors, empty data) is
    raised as MorphoAPIError. The client performs no retries.
    """

    def __init__(
        self,
        graphql_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        """
        Initialize Morpho GraphQL client.

        Args:
            graphql_url: GraphQL endpoint URL (defaults to config)
            http_client: Shared async HTTP client (one is created if omitted)
            rate_limiter: Request limiter (defaults to config limits)
        """
        self.graphql_url = graphql_url or settings.morpho_graphql_url
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=settings.request_timeout_seconds)
        self.rate_limiter = rate_limiter or RateLimiter(
            max_concurrent=settings.max_concurrent_requests,
            request_delay_ms=settings.request_delay_ms,
        )
        logger.info(f"Initialized Morpho GraphQL client: {self.graphql_url}")

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()
            logger.info("Morpho GraphQL client closed")

    async def __aenter__(self) -> "MorphoClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Execute a GraphQL query.

        Args:
            query: GraphQL query string
            variables: Query variables

        Returns:
            The `data` object of the GraphQL response

        Raises:
            MorphoAPIError: On transport failure, non-2xx status, GraphQL
                errors or a response without data
        """
        payload = {"query": query, "variables": variables or {}}

        async with self.rate_limiter:
            try:
                response = await self.client.post(self.graphql_url, json=payload)
            except httpx.RequestError as e:
                logger.error(f"Morpho API transport error: {e}")
                raise MorphoAPIError(f"Morpho API request failed: {e}") from e

        if not response.is_success:
            logger.warning(f"Morpho API HTTP error: {response.status_code}")
            raise MorphoAPIError(f"Morpho API request failed ({response.status_code})")

        try:
            body = response.json()
        except ValueError as e:
            raise MorphoAPIError("Morpho API returned invalid JSON") from e

        # GraphQL errors can occur with 200 OK
        errors = body.get("errors") or []
        if errors:
            error_msg = "; ".join(err.get("message", str(err)) for err in errors)
            logger.warning(f"Morpho GraphQL errors: {error_msg}")
            raise MorphoAPIError(error_msg)

        data = body.get("data")
        if not data:
            raise MorphoAPIError("Morpho API returned empty data")

        return data
