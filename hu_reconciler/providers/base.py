"""
Abstract base classes for repository host access.

The reconciliation core only needs two capabilities from the host: read JSON
with a GET and read JSON with a POST query. Base-URL composition and
authentication belong to the transport implementation, never to callers.
"""

from abc import ABC, abstractmethod
from typing import Any


class HostTransport(ABC):
    """Authenticated JSON transport to a repository host.

    Implementations prepend their API root to ``path``, add any mandatory
    query parameters (such as an API version) and inject credentials.

    Raises (all methods):
        ExternalServiceError: If the host answers with an error status or the
            body is not JSON.
        TransientServiceError: If the failure (rate limiting, 5xx, dropped
            connection) was worth retrying and retries were exhausted.
    """

    @abstractmethod
    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Issue a GET request and return the decoded JSON body.

        Args:
            path: Path relative to the transport's API root.
            params: Query parameters.
        """
        pass

    @abstractmethod
    async def post_json(
        self,
        path: str,
        body: dict[str, Any],
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Issue a POST request with a JSON body and return the decoded JSON body.

        Args:
            path: Path relative to the transport's API root.
            body: JSON-serializable request body.
            params: Query parameters.
        """
        pass

    async def connect(self) -> None:
        """Prepare the transport for use. No-op by default."""
        return None

    async def disconnect(self) -> None:
        """Release the transport. No-op by default."""
        return None

    async def __aenter__(self) -> "HostTransport":
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()
