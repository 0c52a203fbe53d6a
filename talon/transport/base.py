"""
Transport protocol consumed by the interceptor.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from talon.cancellation import CancellationToken
    from talon.context import RequestDescriptor, ResponseDescriptor


@runtime_checkable
class Transport(Protocol):
    """
    Sends one request and returns the response.

    Implementations raise ``TransportError`` on connection or timeout
    failures. Non-success statuses are responses, not errors.
    """

    async def send(
        self,
        request: "RequestDescriptor",
        token: "CancellationToken",
    ) -> "ResponseDescriptor":
        ...
