"""
Interface declarations: route decorators, parameter markers and the
metadata resolver that turns them into immutable descriptors.

Example:
    from typing import Annotated, Protocol
    from talon.contract import GET, POST, Body, Header, api

    @api("/v1")
    class Accounts(Protocol):
        @GET("/accounts/{id}")
        def get(self, id: str) -> Account: ...

        @POST("/accounts")
        async def create(self, account: Annotated[Account, Body()],
                         x_request_id: Annotated[str, Header()] = "") -> Account: ...
"""

from .decorators import (
    DELETE,
    GET,
    HEAD,
    OPTIONS,
    PATCH,
    POST,
    PUT,
    RouteDecorator,
    api,
    headers,
    route,
    timeout,
)
from .params import (
    Binding,
    BindingKind,
    Body,
    Header,
    Path,
    Query,
    RequestPart,
)
from .metadata import (
    InterfaceContract,
    MetadataResolver,
    MethodDeclaration,
    MethodDescriptor,
    ParameterDescriptor,
    ReturnShape,
    describe_interface,
    get_resolver,
    interface_identity,
    resolve_method,
)

__all__ = [
    # Decorators
    "GET",
    "POST",
    "PUT",
    "PATCH",
    "DELETE",
    "HEAD",
    "OPTIONS",
    "RouteDecorator",
    "route",
    "api",
    "headers",
    "timeout",
    # Parameter markers
    "Binding",
    "BindingKind",
    "Path",
    "Query",
    "Header",
    "Body",
    "RequestPart",
    # Descriptors
    "InterfaceContract",
    "MethodDescriptor",
    "ParameterDescriptor",
    "ReturnShape",
    "MetadataResolver",
    "MethodDeclaration",
    "describe_interface",
    "resolve_method",
    "get_resolver",
    "interface_identity",
]
