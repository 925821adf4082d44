"""Request dispatching boundary.

The engine never opens sockets itself. It hands request descriptors to an
injected dispatcher and reads back a status and body. HttpxDispatcher is the
default implementation.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from gatehouse.auth.models.requests import AuthorizationRequestDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchResponse:
    """Status and body returned by a dispatcher."""

    status: int
    body: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON
        """
        return json.loads(self.body)


class RequestDispatcher(Protocol):
    """Performs one network call for a request descriptor.

    Implementations may raise on transport failure; the engine reports any
    exception, like any non-2xx status, as a network failure.
    """

    async def __call__(
        self, descriptor: AuthorizationRequestDescriptor
    ) -> DispatchResponse: ...


class HttpxDispatcher:
    """Dispatches requests with an httpx.AsyncClient."""

    def __init__(self, timeout: float = 30.0, client: httpx.AsyncClient | None = None):
        """Initialize the dispatcher.

        Args:
            timeout: HTTP request timeout in seconds
            client: Optional preconfigured client to use instead
        """
        self.timeout = timeout
        self._http_client = client or httpx.AsyncClient(timeout=timeout)

    async def __call__(
        self, descriptor: AuthorizationRequestDescriptor
    ) -> DispatchResponse:
        """Send the request described by the descriptor.

        Raises:
            httpx.HTTPError: If the request cannot be completed
        """
        logger.debug(f"Dispatching {descriptor.method} {descriptor.url}")

        response = await self._http_client.request(
            descriptor.method,
            descriptor.url,
            content=descriptor.body,
            headers=descriptor.headers,
        )

        return DispatchResponse(
            status=response.status_code,
            body=response.text,
            headers=dict(response.headers),
        )

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()
