"""
Interface Method Decorators

HTTP method decorators for interface methods.
Attach metadata without import-time side effects; the metadata resolver
reads it when a client for the interface is first created.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar, Union
import inspect


F = TypeVar('F', bound=Callable[..., Any])
C = TypeVar('C', bound=type)


class RouteDecorator:
    """
    Base route decorator.

    Attaches request metadata to interface methods for extraction by
    the metadata resolver.
    """

    method: Optional[str] = None

    def __init__(
        self,
        path: Optional[str] = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        summary: Optional[str] = None,
    ):
        """
        Initialize route decorator.

        Args:
            path: Route template relative to the interface prefix
                  (e.g., "/accounts/{id}"), or an absolute URL.
                  If None, the call targets the prefix itself.
            headers: Static headers sent with every call of this method
            timeout: Per-call timeout in seconds (overrides the client default)
            summary: Human-readable summary shown by ``talon inspect``
        """
        self.path = path
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.summary = summary

    def __call__(self, func: F) -> F:
        """
        Decorate interface method.

        Attaches metadata without executing anything.
        """
        if not hasattr(func, '__route_metadata__'):
            func.__route_metadata__ = []

        metadata = {
            'http_method': self.method,
            'path': self.path,
            'headers': self.headers,
            'timeout': self.timeout,
            'summary': self.summary or func.__name__.replace('_', ' ').title(),
            'func_name': func.__name__,
        }

        func.__route_metadata__.append(metadata)

        return func


class GET(RouteDecorator):
    """GET request decorator."""
    method = 'GET'


class POST(RouteDecorator):
    """POST request decorator."""
    method = 'POST'


class PUT(RouteDecorator):
    """PUT request decorator."""
    method = 'PUT'


class PATCH(RouteDecorator):
    """PATCH request decorator."""
    method = 'PATCH'


class DELETE(RouteDecorator):
    """DELETE request decorator."""
    method = 'DELETE'


class HEAD(RouteDecorator):
    """HEAD request decorator."""
    method = 'HEAD'


class OPTIONS(RouteDecorator):
    """OPTIONS request decorator."""
    method = 'OPTIONS'


_VERBS = {
    'GET': GET,
    'POST': POST,
    'PUT': PUT,
    'PATCH': PATCH,
    'DELETE': DELETE,
    'HEAD': HEAD,
    'OPTIONS': OPTIONS,
}


def route(method: str, path: Optional[str] = None, **kwargs) -> Callable[[F], F]:
    """
    Generic route decorator.

    Args:
        method: HTTP method
        path: Route template
        **kwargs: Additional route metadata

    Example:
        @route("GET", "/users")
        def list_users(self) -> list[User]:
            ...
    """
    decorator_cls = _VERBS.get(method.upper())
    if decorator_cls is None:
        # Extension verbs (PROPFIND, ...) pass through unchanged
        decorator = RouteDecorator(path, **kwargs)
        decorator.method = method.upper()
        return decorator
    return decorator_cls(path, **kwargs)


def api(
    prefix: str = "",
    *,
    headers: Optional[Mapping[str, str]] = None,
) -> Callable[[C], C]:
    """
    Interface-level metadata.

    Args:
        prefix: Path prefix joined in front of every method route
        headers: Static headers sent with every call of the interface

    Example:
        @api("/v1/accounts", headers={"Accept": "application/json"})
        class Accounts(Protocol):
            @GET("/{id}")
            def get(self, id: str) -> Account: ...
    """
    def decorator(cls: C) -> C:
        cls.__api_metadata__ = {
            'prefix': prefix,
            'headers': dict(headers or {}),
        }
        return cls

    return decorator


def headers(values: Mapping[str, str]) -> Callable[[F], F]:
    """
    Add static headers to a single method.

    Values override the ``headers=`` argument of the route decorator.
    Stacked ``@headers`` decorators merge; the one closest to the
    function wins on a conflicting name.
    """
    def decorator(func: F) -> F:
        existing: Dict[str, str] = getattr(func, '__header_rules__', {})
        func.__header_rules__ = {**dict(values), **existing}
        return func

    return decorator


def timeout(seconds: Union[int, float]) -> Callable[[F], F]:
    """Set the per-call timeout of a single method."""
    def decorator(func: F) -> F:
        func.__timeout__ = float(seconds)
        return func

    return decorator


def route_metadata(func: Any) -> List[Dict[str, Any]]:
    """Return the route metadata attached to ``func`` (empty if undecorated)."""
    func = inspect.unwrap(func)
    return list(getattr(func, '__route_metadata__', []))
