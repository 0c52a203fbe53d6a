"""
Parameter Binding Markers

Declare where a method argument goes in the outgoing request by
annotating the parameter with ``typing.Annotated``:

    @GET("/accounts/{id}")
    def get(self, id: Annotated[str, Path()],
            expand: Annotated[list[str], Query("expand[]")] = ()) -> Account: ...

Unmarked parameters are inferred by the metadata resolver.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from talon.context import RequestDescriptor


class BindingKind(str, Enum):
    """Where a parameter's value is placed in the request."""
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    BODY = "body"
    CANCEL = "cancel"
    PASSTHROUGH = "passthrough"


class Binding:
    """
    Base binding marker.

    Attributes:
        alias: Wire name (placeholder, query key or header name).
               Defaults to the parameter name.
    """

    kind: BindingKind

    def __init__(self, alias: Optional[str] = None):
        self.alias = alias

    def __repr__(self) -> str:
        alias = f"{self.alias!r}" if self.alias else ""
        return f"{self.__class__.__name__}({alias})"


class Path(Binding):
    """Substitute the value into a ``{placeholder}`` of the route."""
    kind = BindingKind.PATH


class Query(Binding):
    """Append the value to the query string. Lists repeat the key."""
    kind = BindingKind.QUERY


class Header(Binding):
    """
    Send the value as a request header.

    Without an alias, ``x_trace_id`` becomes ``X-Trace-Id``.
    """
    kind = BindingKind.HEADER


class Body(Binding):
    """Encode the value as the request body using the client's codec."""
    kind = BindingKind.BODY

    def __init__(self, format: str = "json"):
        super().__init__(None)
        self.format = format

    def __repr__(self) -> str:
        return f"Body(format={self.format!r})"


class RequestPart(ABC):
    """
    An argument that applies itself to the request.

    Parameters typed as a RequestPart subclass are bound as passthrough:
    the interceptor hands the in-progress request to ``apply_to``.
    """

    @abstractmethod
    def apply_to(self, request: "RequestDescriptor") -> None:
        ...
