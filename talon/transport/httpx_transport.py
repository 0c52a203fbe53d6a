"""
httpx transport - async HTTP via httpx.

Uses one ``httpx.AsyncClient`` per exchange unless a long-lived client is
injected. A per-exchange client works from any event loop, including
the short-lived loops blocking calls run on; inject a client to get
connection pooling in async code.

Usage::

    transport = HttpxTransport()

    async with httpx.AsyncClient(http2=True) as client:
        config = ClientConfig(http_host="https://api.example.com",
                              transport=HttpxTransport(client))
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

import httpx

from talon.context import ResponseDescriptor
from talon.faults import TransportError

if TYPE_CHECKING:
    from talon.cancellation import CancellationToken
    from talon.context import RequestDescriptor

logger = logging.getLogger("talon.transport.httpx")


class HttpxTransport:
    """
    Transport backed by httpx.

    Args:
        client: Long-lived AsyncClient to send through. The caller owns it
                and is responsible for closing it.
        **client_options: Options for the per-exchange AsyncClient when
                          no client is injected (verify, proxy, http2, ...)
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, **client_options: Any):
        self._client = client
        self._client_options = client_options

    async def send(
        self,
        request: "RequestDescriptor",
        token: "CancellationToken",
    ) -> ResponseDescriptor:
        token.raise_if_cancelled()

        if self._client is not None:
            return await self._send(self._client, request)

        async with httpx.AsyncClient(**self._client_options) as client:
            return await self._send(client, request)

    async def _send(self, client: httpx.AsyncClient, request: "RequestDescriptor") -> ResponseDescriptor:
        timeout = httpx.Timeout(request.timeout) if request.timeout is not None else httpx.USE_CLIENT_DEFAULT
        try:
            response = await client.request(
                request.method,
                request.url,
                params=request.query or None,
                headers=request.headers,
                content=request.content,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning(f"{request.method} {request.url} timed out: {e!r}")
            raise TransportError(
                f"timed out after {request.timeout}s",
                method=request.method,
                url=request.url,
                metadata={"timeout": request.timeout},
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"{request.method} {request.url} failed: {e!r}")
            raise TransportError(
                str(e) or type(e).__name__,
                method=request.method,
                url=request.url,
            ) from e

        return ResponseDescriptor(
            status=response.status_code,
            headers=dict(response.headers),
            content=response.content,
            request=request,
        )

    def __repr__(self) -> str:
        mode = "shared client" if self._client is not None else "per-call client"
        return f"<HttpxTransport {mode}>"
