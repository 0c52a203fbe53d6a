"""
Request pipeline - ordered, append-only filter chain.

Every filter exposes two hooks:

    async def before_send(self, context: ActionContext) -> None
    async def after_receive(self, context: ActionContext) -> None

Both stages run in registration order (``after_receive`` is NOT
reversed). Plain (non-async) hooks are accepted as well. A filter that
raises aborts the rest of the pipeline and its error becomes the outcome
of the call.

A ``before_send`` hook may short-circuit the call by assigning
``context.response``: the remaining ``before_send`` hooks and the
transport are skipped, ``after_receive`` still runs for every filter.
"""

from __future__ import annotations

import copy
import inspect
import logging
import threading
import time
from collections import OrderedDict
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
    Union,
)

from .faults import ConfigError

if TYPE_CHECKING:
    from .context import ActionContext, ResponseDescriptor


class ApiFilter:
    """Base filter with no-op hooks. Override either or both."""

    async def before_send(self, context: "ActionContext") -> None:
        return None

    async def after_receive(self, context: "ActionContext") -> None:
        return None


async def _call_hook(hook: Callable[["ActionContext"], Any], context: "ActionContext") -> None:
    result = hook(context)
    if inspect.isawaitable(result):
        await result


class FilterPipeline:
    """
    Ordered filter chain shared by every call made with one config.

    Append-only: filters can be added but never removed or reordered.
    Treat the pipeline as read-only once clients are created from it.
    """

    __slots__ = ("_filters",)

    def __init__(self, filters: Iterable[Any] = ()):
        self._filters: List[Any] = []
        for f in filters:
            self.add(f)

    def add(self, api_filter: Any) -> "FilterPipeline":
        """Append a filter. Returns the pipeline for chaining."""
        if not (callable(getattr(api_filter, "before_send", None))
                and callable(getattr(api_filter, "after_receive", None))):
            raise ConfigError(
                f"Filter {api_filter!r} must define before_send() and after_receive()",
                code="FILTER_INVALID",
                key="filters",
            )
        self._filters.append(api_filter)
        return self

    def __iter__(self) -> Iterator[Any]:
        return iter(tuple(self._filters))

    def __len__(self) -> int:
        return len(self._filters)

    def __repr__(self) -> str:
        names = ", ".join(type(f).__name__ for f in self._filters)
        return f"FilterPipeline([{names}])"

    async def run_before_send(self, context: "ActionContext") -> bool:
        """
        Run the pre-send stage.

        Returns:
            True if a filter short-circuited the call
        """
        for api_filter in tuple(self._filters):
            context.token.raise_if_cancelled(context.method.name)
            await _call_hook(api_filter.before_send, context)
            if context.response is not None:
                return True
        return False

    async def run_after_receive(self, context: "ActionContext") -> None:
        """Run the post-receive stage."""
        for api_filter in tuple(self._filters):
            context.token.raise_if_cancelled(context.method.name)
            await _call_hook(api_filter.after_receive, context)


# ============================================================================
# Built-in filters
# ============================================================================

class HeadersFilter(ApiFilter):
    """
    Add static headers to every request.

    Args:
        headers: Header values to add
        overwrite: Replace headers already set by the interface or arguments
    """

    def __init__(self, headers: dict, *, overwrite: bool = False):
        self.headers = dict(headers)
        self.overwrite = overwrite

    async def before_send(self, context: "ActionContext") -> None:
        request = context.request
        for name, value in self.headers.items():
            if self.overwrite or request.get_header(name) is None:
                request.set_header(name, value)


TokenSource = Union[str, Callable[[], Union[str, Awaitable[str]]]]


class BearerTokenFilter(ApiFilter):
    """
    Set the Authorization header from a static token or a token provider.

    The provider may be sync or async and is called once per request, so
    it can refresh expiring tokens.
    """

    def __init__(self, token: TokenSource, *, scheme: str = "Bearer", header: str = "Authorization"):
        self.token = token
        self.scheme = scheme
        self.header = header

    async def before_send(self, context: "ActionContext") -> None:
        token = self.token
        if callable(token):
            token = token()
            if inspect.isawaitable(token):
                token = await token
        if not token:
            raise ConfigError("Bearer token provider returned no token", code="AUTH_TOKEN_MISSING")
        value = f"{self.scheme} {token}" if self.scheme else token
        context.request.set_header(self.header, value)


class LoggingFilter(ApiFilter):
    """
    Log one line per request and one per response with timing.

    Responses slower than ``slow_threshold`` seconds log at WARNING.
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        *,
        level: int = logging.INFO,
        slow_threshold: Optional[float] = None,
        log_headers: bool = False,
    ):
        self.logger = logger or logging.getLogger("talon.access")
        self.level = level
        self.slow_threshold = slow_threshold
        self.log_headers = log_headers

    async def before_send(self, context: "ActionContext") -> None:
        context.state["logging.started"] = time.perf_counter()
        request = context.request
        message = f"--> {request.method} {request.full_url} ({context.method.qualname})"
        if self.log_headers:
            message += f" headers={self._redact(request.headers)}"
        self.logger.log(self.level, message)

    async def after_receive(self, context: "ActionContext") -> None:
        started = context.state.get("logging.started", time.perf_counter())
        elapsed = time.perf_counter() - started
        response = context.response
        request = context.request
        level = self.level
        if self.slow_threshold is not None and elapsed > self.slow_threshold:
            level = logging.WARNING
        cached = " (cached)" if context.state.get("cache.hit") else ""
        self.logger.log(
            level,
            f"<-- {response.status} {request.method} {request.full_url} "
            f"{elapsed * 1000:.1f}ms {len(response.content)}B{cached}",
        )

    @staticmethod
    def _redact(headers: dict) -> dict:
        return {
            k: ("***" if k.lower() in ("authorization", "cookie", "x-api-key") else v)
            for k, v in headers.items()
        }


class ResponseCacheFilter(ApiFilter):
    """
    In-memory response cache for idempotent requests.

    Serves successful responses for GET/HEAD from memory for ``ttl``
    seconds, short-circuiting the transport on a hit. LRU-bounded by
    ``max_size``. Thread-safe; one instance may back many clients.

    Requests carrying ``Cache-Control: no-cache`` bypass the cache.
    """

    def __init__(
        self,
        ttl: float = 60.0,
        *,
        max_size: int = 1000,
        cacheable_methods: Tuple[str, ...] = ("GET", "HEAD"),
        vary_headers: Tuple[str, ...] = ("Accept", "Authorization"),
    ):
        if ttl <= 0:
            raise ConfigError("ResponseCacheFilter ttl must be positive", key="ttl")
        self.ttl = ttl
        self.max_size = max_size
        self.cacheable_methods = tuple(m.upper() for m in cacheable_methods)
        self.vary_headers = vary_headers
        self._entries: "OrderedDict[str, Tuple[float, ResponseDescriptor]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def _key(self, context: "ActionContext") -> Optional[str]:
        request = context.request
        if request.method not in self.cacheable_methods:
            return None
        if "no-cache" in (request.get_header("Cache-Control") or ""):
            return None
        vary = "|".join(request.get_header(h) or "" for h in self.vary_headers)
        return f"{request.method} {request.full_url} {vary}"

    async def before_send(self, context: "ActionContext") -> None:
        key = self._key(context)
        if key is None:
            return
        context.state["cache.key"] = key

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[0] <= time.monotonic():
                del self._entries[key]
                entry = None
            if entry is None:
                self.misses += 1
                return
            self._entries.move_to_end(key)
            self.hits += 1

        context.state["cache.hit"] = True
        context.response = _snapshot(entry[1], context.request)

    async def after_receive(self, context: "ActionContext") -> None:
        key = context.state.get("cache.key")
        response = context.response
        if key is None or context.state.get("cache.hit") or not response.is_success:
            return

        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[key] = (time.monotonic() + self.ttl, _snapshot(response, None))
            self._entries.move_to_end(key)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def _snapshot(response: "ResponseDescriptor", request: Any) -> "ResponseDescriptor":
    """Copy of ``response`` that shares no mutable state with the original."""
    copied = copy.copy(response)
    copied.headers = dict(response.headers)
    copied.request = request
    return copied
