"""
Talon Testing - in-memory transport for client tests.

Provides :class:`MockTransport`, a transport that records every request
and answers from a handler or a queue of canned responses, and
:func:`json_response` for building canned responses.

Usage::

    transport = MockTransport(json_response({"id": "7", "name": "Ada"}))
    config = ClientConfig(http_host="https://api.test", transport=transport)
    accounts = HttpApi.create(Accounts, config)

    accounts.get("7")
    assert transport.last_request.url == "https://api.test/accounts/7"
"""

from __future__ import annotations

import asyncio
import inspect
import json
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Union

from .cancellation import CancellationToken
from .context import RequestDescriptor, ResponseDescriptor
from .faults import TransportError

Handler = Callable[[RequestDescriptor], Any]


def json_response(
    data: Any = None,
    status: int = 200,
    headers: Optional[Dict[str, str]] = None,
) -> ResponseDescriptor:
    """Build a JSON response (an empty body when ``data`` is None)."""
    content = b"" if data is None else json.dumps(data).encode("utf-8")
    merged = {"Content-Type": "application/json"}
    merged.update(headers or {})
    return ResponseDescriptor(status=status, headers=merged, content=content)


class MockTransport:
    """
    In-memory transport.

    Answers each request from, in order of preference:
    1. the next queued response (``enqueue``)
    2. the handler (sync or async; may raise to simulate failures)
    3. an empty 200 response

    Args:
        responder: A ResponseDescriptor to queue or a handler callable
        delay: Seconds to sleep before answering (for cancellation tests)
    """

    def __init__(
        self,
        responder: Union[ResponseDescriptor, Handler, None] = None,
        *,
        delay: float = 0.0,
    ):
        self.requests: List[RequestDescriptor] = []
        self._queue: Deque[ResponseDescriptor] = deque()
        self._handler: Optional[Handler] = None
        self.delay = delay

        if isinstance(responder, ResponseDescriptor):
            self.enqueue(responder)
        elif responder is not None:
            self._handler = responder

    def enqueue(self, *responses: ResponseDescriptor) -> "MockTransport":
        self._queue.extend(responses)
        return self

    async def send(self, request: RequestDescriptor, token: CancellationToken) -> ResponseDescriptor:
        token.raise_if_cancelled()
        self.requests.append(request)

        if self.delay:
            await asyncio.sleep(self.delay)

        if self._queue:
            response = self._queue.popleft()
        elif self._handler is not None:
            response = self._handler(request)
            if inspect.isawaitable(response):
                response = await response
        else:
            response = ResponseDescriptor(status=200)

        if not isinstance(response, ResponseDescriptor):
            raise TransportError(
                f"mock handler returned {type(response).__name__}",
                method=request.method,
                url=request.url,
            )
        response.request = request
        return response

    @property
    def calls(self) -> int:
        return len(self.requests)

    @property
    def last_request(self) -> Optional[RequestDescriptor]:
        return self.requests[-1] if self.requests else None

    def reset(self) -> None:
        self.requests.clear()
        self._queue.clear()

    def __repr__(self) -> str:
        return f"<MockTransport calls={self.calls} queued={len(self._queue)}>"
