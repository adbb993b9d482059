"""
HTTP connection pooling for repository host requests.

A reconciliation run fans out dozens of concurrent queries on large
repositories. The pool reuses connections (HTTP/2 multiplexing) and bounds
the number of requests in flight with a semaphore, so fan-out queues instead
of opening unbounded connections.
"""

import asyncio
from typing import Any

import httpx
import structlog

log = structlog.get_logger(__name__)


class HTTPConnectionPool:
    """HTTP connection pool with bounded request concurrency."""

    def __init__(
        self,
        base_url: str,
        max_connections: int = 20,
        max_keepalive_connections: int = 10,
        max_concurrent_requests: int = 16,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.base_url = base_url
        self.max_connections = max_connections
        self.max_keepalive_connections = max_keepalive_connections
        self.max_concurrent_requests = max_concurrent_requests
        self.timeout = timeout
        self.headers = headers or {}
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()
        self._semaphore = asyncio.Semaphore(max_concurrent_requests)

    async def initialize(self) -> None:
        """Initialize the connection pool."""
        async with self._lock:
            if self._client is None:
                limits = httpx.Limits(
                    max_keepalive_connections=self.max_keepalive_connections,
                    max_connections=self.max_connections,
                    keepalive_expiry=30.0,
                )

                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    limits=limits,
                    timeout=self.timeout,
                    http2=True,
                    headers=self.headers,
                )

                log.info(
                    "connection_pool_initialized",
                    base_url=self.base_url,
                    max_connections=self.max_connections,
                    max_concurrent_requests=self.max_concurrent_requests,
                )

    async def close(self) -> None:
        """Close the connection pool."""
        async with self._lock:
            if self._client:
                await self._client.aclose()
                self._client = None
                log.info("connection_pool_closed", base_url=self.base_url)

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        """Make GET request."""
        return await self._send("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        """Make POST request."""
        return await self._send("POST", path, **kwargs)

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if self._client is None:
            await self.initialize()

        assert self._client is not None
        async with self._semaphore:
            return await self._client.request(method, path, **kwargs)

    async def __aenter__(self) -> "HTTPConnectionPool":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.close()


class ConnectionPoolManager:
    """Manage multiple named connection pools."""

    def __init__(self) -> None:
        self._pools: dict[str, HTTPConnectionPool] = {}
        self._lock = asyncio.Lock()

    async def get_pool(
        self,
        name: str,
        base_url: str,
        max_connections: int = 20,
        max_concurrent_requests: int = 16,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ) -> HTTPConnectionPool:
        """Get or create a named connection pool."""
        async with self._lock:
            if name not in self._pools:
                pool = HTTPConnectionPool(
                    base_url=base_url,
                    max_connections=max_connections,
                    max_concurrent_requests=max_concurrent_requests,
                    timeout=timeout,
                    headers=headers,
                )
                await pool.initialize()
                self._pools[name] = pool
                log.info("connection_pool_created", name=name, base_url=base_url)

            return self._pools[name]

    async def close_all(self) -> None:
        """Close all connection pools."""
        async with self._lock:
            for pool in self._pools.values():
                await pool.close()
            self._pools.clear()
            log.info("all_connection_pools_closed")


# Global pool manager
_pool_manager = ConnectionPoolManager()


async def get_pool(
    name: str,
    base_url: str,
    max_connections: int = 20,
    max_concurrent_requests: int = 16,
    timeout: float = 30.0,
    headers: dict[str, str] | None = None,
) -> HTTPConnectionPool:
    """Get a named connection pool from the global manager."""
    return await _pool_manager.get_pool(
        name=name,
        base_url=base_url,
        max_connections=max_connections,
        max_concurrent_requests=max_concurrent_requests,
        timeout=timeout,
        headers=headers,
    )


async def close_all_pools() -> None:
    """Close every pool held by the global manager."""
    await _pool_manager.close_all()
