"""
Call context - per-invocation request state.

Provides:
- RequestDescriptor: the request being built
- ResponseDescriptor: the response handed back by the transport
- ActionContext: everything one in-flight call owns
- build_context(): binds runtime arguments into a fresh ActionContext
"""

from __future__ import annotations

import dataclasses
import enum
import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote, urlencode, urljoin

from .cancellation import CancellationToken
from .contract.metadata import MethodDescriptor
from .contract.params import BindingKind
from .faults import ConfigError

if TYPE_CHECKING:
    from .config import ClientConfig


@dataclass
class RequestDescriptor:
    """
    Mutable request under construction.

    Filters may rewrite any field before the transport sends it.

    Attributes:
        method: HTTP method
        url: Absolute URL without the query string
        headers: Request headers
        query: Query parameters as ordered (key, value) pairs
        content: Encoded body, if any
        timeout: Timeout in seconds for this exchange
    """
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    query: List[Tuple[str, str]] = field(default_factory=list)
    content: Optional[bytes] = None
    timeout: Optional[float] = None

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def set_header(self, name: str, value: str) -> None:
        """Set a header, replacing any existing one regardless of case."""
        self.remove_header(name)
        self.headers[name] = value

    def remove_header(self, name: str) -> None:
        lowered = name.lower()
        for key in [k for k in self.headers if k.lower() == lowered]:
            del self.headers[key]

    def add_query(self, key: str, value: Any) -> None:
        for rendered in _render_query_values(value):
            self.query.append((key, rendered))

    @property
    def full_url(self) -> str:
        """URL including the encoded query string."""
        if not self.query:
            return self.url
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode(self.query)}"


@dataclass
class ResponseDescriptor:
    """
    Response produced by the transport (or by a short-circuiting filter).

    Attributes:
        status: HTTP status code
        headers: Response headers
        content: Raw body bytes
        request: The request that produced this response
    """
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    content: bytes = b""
    request: Optional[RequestDescriptor] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.content.decode("utf-8"))

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default


@dataclass(eq=False)
class ActionContext:
    """
    State of one in-flight call.

    Created per call and owned exclusively by it; never shared between
    calls or reused.

    Attributes:
        method: Resolved method descriptor
        arguments: Runtime argument values ordered by parameter position
        config: Client configuration (shared, read-only)
        request: Request under construction
        token: Cancellation signal of this call
        response: Response once received, or set early by a filter to
                  short-circuit the transport
        state: Scratch space for filters
    """
    method: MethodDescriptor
    arguments: Tuple[Any, ...]
    config: "ClientConfig"
    request: RequestDescriptor
    token: CancellationToken
    response: Optional[ResponseDescriptor] = None
    state: Dict[str, Any] = field(default_factory=dict)

    def argument(self, name: str) -> Any:
        for param in self.method.parameters:
            if param.name == name:
                return self.arguments[param.position]
        raise KeyError(name)

    def __repr__(self) -> str:
        return f"<ActionContext {self.method.qualname} {self.request.method} {self.request.url}>"


def build_context(
    method: MethodDescriptor,
    arguments: Iterable[Any],
    config: "ClientConfig",
) -> ActionContext:
    """
    Bind runtime arguments to ``method`` and build the initial request.

    Header precedence, lowest first: client default headers, interface and
    method header rules, header parameters.

    Raises:
        ConfigError: If the arguments do not fit the descriptor or the
                     route cannot be made absolute
    """
    arguments = tuple(arguments)
    if len(arguments) != len(method.parameters):
        raise ConfigError(
            f"{method.qualname} expects {len(method.parameters)} arguments, got {len(arguments)}",
            code="DESCRIPTOR_MISMATCH",
        )

    route = method.route
    for param in method.parameters_of(BindingKind.PATH):
        value = arguments[param.position]
        if value is None:
            raise ConfigError(
                f"{method.qualname}: path parameter '{param.name}' is None",
                code="ARGUMENT_INVALID",
                key=param.name,
            )
        route = route.replace("{" + param.alias + "}", quote(_render_scalar(value), safe=""))

    request = RequestDescriptor(
        method=method.http_method,
        url=_absolute_url(config.http_host, route, method),
        headers=dict(config.default_headers),
        timeout=method.timeout if method.timeout is not None else config.timeout,
    )
    for name, value in method.headers:
        request.set_header(name, value)

    token: Optional[CancellationToken] = None
    passthrough = []
    for param in method.parameters:
        value = arguments[param.position]
        if param.kind is BindingKind.QUERY:
            _bind_query(request, param.alias, value)
        elif param.kind is BindingKind.HEADER:
            if value is not None:
                request.set_header(param.alias, _render_scalar(value))
        elif param.kind is BindingKind.BODY:
            if value is not None:
                codec = config.codec
                request.content = codec.serialize(value, param.body_format)
                if request.get_header("Content-Type") is None:
                    request.set_header("Content-Type", codec.content_type(param.body_format))
        elif param.kind is BindingKind.CANCEL:
            token = value
        elif param.kind is BindingKind.PASSTHROUGH:
            if value is not None:
                passthrough.append(value)

    # Self-applying arguments go last so they see the fully built request
    for part in passthrough:
        part.apply_to(request)

    return ActionContext(
        method=method,
        arguments=arguments,
        config=config,
        request=request,
        token=token if token is not None else CancellationToken(),
    )


def _absolute_url(http_host: Optional[str], route: str, method: MethodDescriptor) -> str:
    if "://" in route:
        return route
    if not http_host:
        raise ConfigError(
            f"{method.qualname} has a relative route '{route or '/'}' "
            "but the client has no http_host",
            code="HTTP_HOST_MISSING",
            key="http_host",
        )
    if not route:
        return http_host
    return urljoin(http_host.rstrip("/") + "/", route.lstrip("/"))


def _bind_query(request: RequestDescriptor, alias: str, value: Any) -> None:
    if value is None:
        return
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)
    if isinstance(value, dict):
        for key, item in value.items():
            request.add_query(str(key), item)
        return
    request.add_query(alias, value)


def _render_query_values(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_render_scalar(v) for v in value if v is not None]
    return [_render_scalar(value)]


def _render_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, enum.Enum):
        return str(value.value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
