"""
Talon - typed HTTP API clients from declared interfaces

Declare a remote API as a plain class whose methods carry route
decorators; Talon synthesizes a client whose calls become HTTP requests:
- Contract: route decorators, parameter markers, resolved descriptors
- Interceptor: build / filter / send / filter / convert for every call
- Filters: ordered request pipeline (headers, auth, logging, caching)
- Transports: httpx by default, in-memory for tests
- Faults: typed errors for every stage of a call
"""

__version__ = "0.1.0"

from .cancellation import CancellationToken
from .codecs import Codec, JsonCodec
from .config import ClientConfig, ConfigLoader, load_client_config
from .context import ActionContext, RequestDescriptor, ResponseDescriptor
from .contract import (
    DELETE,
    GET,
    HEAD,
    OPTIONS,
    PATCH,
    POST,
    PUT,
    Body,
    Header,
    InterfaceContract,
    MethodDescriptor,
    ParameterDescriptor,
    Path,
    Query,
    RequestPart,
    ReturnShape,
    api,
    describe_interface,
    headers,
    route,
    timeout,
)
from .faults import (
    CancelledError,
    ConfigError,
    ContractError,
    DeserializationError,
    Fault,
    FaultDomain,
    ResponseError,
    SerializationError,
    Severity,
    TransportError,
)
from .filters import (
    ApiFilter,
    BearerTokenFilter,
    FilterPipeline,
    HeadersFilter,
    LoggingFilter,
    ResponseCacheFilter,
)
from .http_api import HttpApi, create_proxy, get_registry, resolve_identity
from .interceptor import ApiInterceptor
from .proxy import HttpApiProxy, ProxyRegistry
from .transport import HttpxTransport, Transport

__all__ = [
    "__version__",
    # Front door
    "HttpApi",
    "create_proxy",
    "resolve_identity",
    "get_registry",
    # Config
    "ClientConfig",
    "ConfigLoader",
    "load_client_config",
    # Contract
    "GET",
    "POST",
    "PUT",
    "PATCH",
    "DELETE",
    "HEAD",
    "OPTIONS",
    "route",
    "api",
    "headers",
    "timeout",
    "Path",
    "Query",
    "Header",
    "Body",
    "RequestPart",
    "InterfaceContract",
    "MethodDescriptor",
    "ParameterDescriptor",
    "ReturnShape",
    "describe_interface",
    # Runtime
    "ApiInterceptor",
    "ActionContext",
    "RequestDescriptor",
    "ResponseDescriptor",
    "CancellationToken",
    "HttpApiProxy",
    "ProxyRegistry",
    # Filters
    "ApiFilter",
    "FilterPipeline",
    "HeadersFilter",
    "BearerTokenFilter",
    "LoggingFilter",
    "ResponseCacheFilter",
    # Transport / codecs
    "Transport",
    "HttpxTransport",
    "Codec",
    "JsonCodec",
    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "ContractError",
    "ConfigError",
    "TransportError",
    "ResponseError",
    "DeserializationError",
    "SerializationError",
    "CancelledError",
]
