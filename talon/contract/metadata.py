"""
Interface Metadata Extraction

Turns a declared interface class into immutable descriptors:
- InterfaceContract: one per interface
- MethodDeclaration: one per method function, shared by every interface
  that inherits it
- MethodDescriptor: a declaration with the interface prefix and headers
  applied
- ParameterDescriptor: one per method parameter

Resolution runs once per method function and is cached for the lifetime
of the process. Every declaration problem is reported as a ContractError at
resolution time, never on an individual call.
"""

from __future__ import annotations

import dataclasses
import inspect
import logging
import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Annotated,
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from talon.cancellation import CancellationToken
from talon.faults import ContractError

from .decorators import route_metadata
from .params import Binding, BindingKind, RequestPart

logger = logging.getLogger("talon.contract.metadata")

_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
_BODYLESS_VERBS = frozenset({"GET", "HEAD"})
_DEFAULT_VERB = "GET"


class ReturnShape(str, Enum):
    """How a call hands its result back to the caller."""
    NONE = "none"           # result discarded, errors still raised
    VALUE = "value"         # caller blocks until the value is ready
    DEFERRED = "deferred"   # awaitable returned immediately


@dataclass(frozen=True)
class ParameterDescriptor:
    """
    Resolved binding of one method parameter.

    Attributes:
        position: Index among the method's parameters (``self`` excluded)
        name: Parameter name
        annotation: Declared type with ``Annotated`` metadata stripped
        kind: Where the value goes in the request
        alias: Wire name (placeholder, query key or header name)
        default: Default value, or ``inspect.Parameter.empty``
        body_format: Codec format for BODY parameters
    """
    position: int
    name: str
    annotation: Any
    kind: BindingKind
    alias: str
    default: Any = inspect.Parameter.empty
    body_format: Optional[str] = None

    @property
    def has_default(self) -> bool:
        return self.default is not inspect.Parameter.empty

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position,
            "name": self.name,
            "type": _type_name(self.annotation),
            "kind": self.kind.value,
            "alias": self.alias,
        }


@dataclass(frozen=True)
class MethodDescriptor:
    """
    Resolved request description of one interface method.

    Attributes:
        interface: Identity of the declaring interface ("module:QualName")
        name: Method name
        http_method: GET, POST, etc.
        route: Route template with the interface prefix applied
        placeholders: Placeholder names found in ``route``, in order
        parameters: Parameter descriptors, in declaration order
        return_shape: NONE, VALUE or DEFERRED
        return_type: Declared return type (``Any`` when unannotated)
        headers: Interface and method header rules, method rules last
        timeout: Per-call timeout in seconds, if declared
        summary: Human-readable summary
    """
    interface: str
    name: str
    http_method: str
    route: str
    placeholders: Tuple[str, ...]
    parameters: Tuple[ParameterDescriptor, ...]
    return_shape: ReturnShape
    return_type: Any
    headers: Tuple[Tuple[str, str], ...] = ()
    timeout: Optional[float] = None
    summary: str = ""
    signature: inspect.Signature = field(default=None, compare=False, repr=False)

    @property
    def is_async(self) -> bool:
        return self.return_shape is ReturnShape.DEFERRED

    @property
    def qualname(self) -> str:
        return f"{self.interface}.{self.name}"

    def parameters_of(self, kind: BindingKind) -> Tuple[ParameterDescriptor, ...]:
        return tuple(p for p in self.parameters if p.kind is kind)

    def bind(self, args: tuple, kwargs: Mapping[str, Any]) -> Tuple[Any, ...]:
        """
        Bind call arguments to parameters, applying defaults.

        Returns the argument values ordered by parameter position.
        Raises TypeError for arguments that do not match the signature,
        exactly as calling the declared method would.
        """
        bound = self.signature.bind(*args, **kwargs)
        bound.apply_defaults()
        return tuple(bound.arguments[p.name] for p in self.parameters)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "http_method": self.http_method,
            "route": self.route,
            "return_shape": self.return_shape.value,
            "return_type": _type_name(self.return_type),
            "headers": dict(self.headers),
            "timeout": self.timeout,
            "summary": self.summary,
            "parameters": [p.to_dict() for p in self.parameters],
        }


@dataclass(frozen=True)
class InterfaceContract:
    """
    Complete resolved description of an interface.

    Attributes:
        interface: The interface class
        identity: Import identity ("module:QualName")
        methods: Method descriptors, in declaration order
        prefix: Interface-level route prefix
        headers: Interface-level header rules
    """
    interface: type
    identity: str
    methods: Tuple[MethodDescriptor, ...]
    prefix: str = ""
    headers: Tuple[Tuple[str, str], ...] = ()

    def method(self, name: str) -> MethodDescriptor:
        for method in self.methods:
            if method.name == name:
                return method
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interface": self.identity,
            "prefix": self.prefix,
            "headers": dict(self.headers),
            "methods": [m.to_dict() for m in self.methods],
        }


@dataclass(frozen=True)
class DeclaredParameter:
    """A method parameter as written, before route placeholders are known."""
    position: int
    name: str
    annotation: Any
    marker: Optional[Binding] = None
    default: Any = inspect.Parameter.empty


@dataclass(frozen=True)
class MethodDeclaration:
    """
    What a method declares on its own, independent of the interface
    that exposes it.

    Attributes:
        name: Method name
        http_method: GET, POST, etc.
        path: Method route, without any interface prefix
        parameters: Declared parameters (``self`` excluded)
        return_shape: NONE, VALUE or DEFERRED
        return_type: Declared return type
        headers: Header rules from the route and ``@headers``
        timeout: Declared timeout, if any
        summary: Human-readable summary
        signature: Signature without ``self``
    """
    name: str
    http_method: str
    path: str
    parameters: Tuple[DeclaredParameter, ...]
    return_shape: ReturnShape
    return_type: Any
    headers: Tuple[Tuple[str, str], ...] = ()
    timeout: Optional[float] = None
    summary: str = ""
    signature: inspect.Signature = field(default=None, compare=False, repr=False)


def interface_identity(interface: type) -> str:
    return f"{interface.__module__}:{interface.__qualname__}"


class MetadataResolver:
    """
    Resolves and caches interface and method descriptors.

    Reflection over a method (route metadata, type hints, signature,
    markers) runs once per function object. A method inherited by several
    interfaces shares that declaration; each interface then only applies
    its own prefix and headers to it.

    Thread-safe: resolution runs under a lock, so a method is resolved at
    most once even under concurrent first use.
    """

    def __init__(self) -> None:
        self._declarations: Dict[Callable, MethodDeclaration] = {}
        self._methods: Dict[Tuple[type, Callable], MethodDescriptor] = {}
        self._contracts: Dict[type, InterfaceContract] = {}
        self._lock = threading.RLock()
        self.resolutions = 0

    def describe_interface(self, interface: Any) -> InterfaceContract:
        """
        Resolve every method of ``interface``.

        Raises:
            ContractError: If the interface or any member is unusable
        """
        _check_interface_type(interface)

        with self._lock:
            contract = self._contracts.get(interface)
            if contract is not None:
                return contract

            identity = interface_identity(interface)
            methods = [
                self.resolve(interface, func)
                for _, func in _iter_contract_members(interface, identity)
            ]
            if not methods:
                raise ContractError(
                    "declares no methods to bind",
                    code="INTERFACE_EMPTY",
                    interface=identity,
                )

            api_meta = getattr(interface, '__api_metadata__', {})
            contract = InterfaceContract(
                interface=interface,
                identity=identity,
                methods=tuple(methods),
                prefix=api_meta.get('prefix', ''),
                headers=tuple(api_meta.get('headers', {}).items()),
            )
            self._contracts[interface] = contract
            logger.debug(f"Described interface {identity} ({len(methods)} methods)")
            return contract

    def resolve(self, interface: type, func: Callable) -> MethodDescriptor:
        """Resolve one method, returning the cached descriptor after the first call."""
        key = (interface, func)
        with self._lock:
            descriptor = self._methods.get(key)
            if descriptor is None:
                descriptor = _bind_method(interface, self.declaration(func, interface))
                self._methods[key] = descriptor
            return descriptor

    def declaration(self, func: Callable, interface: Optional[type] = None) -> MethodDeclaration:
        """
        Interface-independent declaration of ``func``, resolved once per function.

        ``interface`` only names the owner in error messages.
        """
        with self._lock:
            declaration = self._declarations.get(func)
            if declaration is None:
                owner = interface_identity(interface) if interface is not None else func.__module__
                declaration = _declare_method(owner, func)
                self._declarations[func] = declaration
                self.resolutions += 1
                logger.debug(
                    f"Resolved {func.__qualname__}: "
                    f"{declaration.http_method} {declaration.path or '/'}"
                )
            return declaration

    def clear(self) -> None:
        """Drop all cached descriptors. Intended for tests."""
        with self._lock:
            self._declarations.clear()
            self._methods.clear()
            self._contracts.clear()
            self.resolutions = 0


# ============================================================================
# Interface inspection
# ============================================================================

_FRAMEWORK_MODULES = frozenset({"builtins", "typing", "typing_extensions", "abc"})


def _check_interface_type(interface: Any) -> None:
    if interface is None:
        raise ContractError("interface type is required", code="INTERFACE_MISSING")
    if not isinstance(interface, type):
        raise ContractError(
            f"expected an interface class, got {type(interface).__name__}",
            code="INTERFACE_NOT_A_CLASS",
        )


def _iter_contract_members(interface: type, identity: str) -> Iterator[Tuple[str, Callable]]:
    """
    Yield (name, function) for every public member, most-derived first.

    Names starting with an underscore are not part of the contract.
    """
    seen = set()
    for klass in interface.__mro__:
        if klass is object or klass.__module__ in _FRAMEWORK_MODULES:
            continue
        for name, value in vars(klass).items():
            if name.startswith("_") or name in seen:
                continue
            seen.add(name)

            if isinstance(value, (staticmethod, classmethod)):
                raise ContractError(
                    "static and class methods cannot be bound to requests",
                    code="MEMBER_STATIC",
                    interface=identity,
                    member=name,
                )
            if not inspect.isfunction(value):
                raise ContractError(
                    f"unsupported member of type {type(value).__name__}; "
                    "interfaces may only declare methods",
                    code="MEMBER_UNSUPPORTED",
                    interface=identity,
                    member=name,
                )
            yield name, value


# ============================================================================
# Method resolution
# ============================================================================

def _declare_method(owner: str, func: Callable) -> MethodDeclaration:
    name = func.__name__

    def fail(message: str, code: str) -> ContractError:
        return ContractError(message, code=code, interface=owner, member=name)

    if inspect.isasyncgenfunction(func) or inspect.isgeneratorfunction(func):
        raise fail("generator methods are not supported", "MEMBER_UNSUPPORTED")

    routes = route_metadata(func)
    if len(routes) > 1:
        raise fail("declares more than one route", "ROUTE_AMBIGUOUS")
    route_meta = routes[0] if routes else {}

    try:
        hints = get_type_hints(func, include_extras=True)
    except Exception as e:
        raise fail(f"type hints could not be evaluated: {e}", "ANNOTATION_INVALID") from e

    signature = inspect.signature(func)
    params = list(signature.parameters.values())
    if not params or params[0].kind not in (
        inspect.Parameter.POSITIONAL_ONLY,
        inspect.Parameter.POSITIONAL_OR_KEYWORD,
    ):
        raise fail("interface methods must take 'self' first", "MEMBER_STATIC")
    params = params[1:]

    parameters = []
    for position, param in enumerate(params):
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            raise fail(
                f"variadic parameter '{param.name}' cannot be bound to a request",
                "PARAMETER_VARIADIC",
            )
        annotation, markers = _split_annotated(hints.get(param.name, Any))
        if len(markers) > 1:
            kinds = ", ".join(type(m).__name__ for m in markers)
            raise fail(
                f"parameter '{param.name}' declares conflicting bindings ({kinds})",
                "BINDING_OVERLAP",
            )
        parameters.append(DeclaredParameter(
            position=position,
            name=param.name,
            annotation=annotation,
            marker=markers[0] if markers else None,
            default=param.default,
        ))

    return_type = hints.get('return', Any)
    if isinstance(return_type, TypeVar):
        raise fail("generic return types are not supported", "RETURN_GENERIC")

    if inspect.iscoroutinefunction(func):
        return_shape = ReturnShape.DEFERRED
    elif return_type is None or return_type is type(None):
        return_shape = ReturnShape.NONE
    else:
        return_shape = ReturnShape.VALUE

    header_rules = {
        **route_meta.get('headers', {}),
        **getattr(func, '__header_rules__', {}),
    }
    timeout = getattr(func, '__timeout__', None)
    if timeout is None:
        timeout = route_meta.get('timeout')

    return MethodDeclaration(
        name=name,
        http_method=(route_meta.get('http_method') or _DEFAULT_VERB).upper(),
        path=route_meta.get('path') or '',
        parameters=tuple(parameters),
        return_shape=return_shape,
        return_type=return_type,
        headers=tuple(header_rules.items()),
        timeout=timeout,
        summary=route_meta.get('summary') or name.replace('_', ' ').title(),
        signature=signature.replace(parameters=params),
    )


def _bind_method(interface: type, declaration: MethodDeclaration) -> MethodDescriptor:
    """Apply the interface prefix and headers to a declaration and check its bindings."""
    identity = interface_identity(interface)

    def fail(message: str, code: str) -> ContractError:
        return ContractError(message, code=code, interface=identity, member=declaration.name)

    api_meta = getattr(interface, '__api_metadata__', {})
    route = _join_route(api_meta.get('prefix', ''), declaration.path)
    placeholders = tuple(dict.fromkeys(_PLACEHOLDER_RE.findall(route)))
    http_method = declaration.http_method

    parameters = [
        _resolve_parameter(p, placeholders, http_method)
        for p in declaration.parameters
    ]
    _validate_bindings(parameters, placeholders, http_method, fail)

    header_rules = {
        **dict(api_meta.get('headers', {})),
        **dict(declaration.headers),
    }

    return MethodDescriptor(
        interface=identity,
        name=declaration.name,
        http_method=http_method,
        route=route,
        placeholders=placeholders,
        parameters=tuple(parameters),
        return_shape=declaration.return_shape,
        return_type=declaration.return_type,
        headers=tuple(header_rules.items()),
        timeout=declaration.timeout,
        summary=declaration.summary,
        signature=declaration.signature,
    )


def _resolve_parameter(
    declared: DeclaredParameter,
    placeholders: Tuple[str, ...],
    http_method: str,
) -> ParameterDescriptor:
    body_format = None
    marker = declared.marker
    if marker is not None:
        kind = marker.kind
        alias = marker.alias
        if kind is BindingKind.BODY:
            body_format = marker.format
    else:
        kind = _infer_kind(declared.name, declared.annotation, placeholders, http_method)
        alias = None
        if kind is BindingKind.BODY:
            body_format = "json"

    if alias is None:
        alias = _header_name(declared.name) if kind is BindingKind.HEADER else declared.name

    return ParameterDescriptor(
        position=declared.position,
        name=declared.name,
        annotation=declared.annotation,
        kind=kind,
        alias=alias,
        default=declared.default,
        body_format=body_format,
    )


def _validate_bindings(
    parameters: List[ParameterDescriptor],
    placeholders: Tuple[str, ...],
    http_method: str,
    fail: Callable[[str, str], ContractError],
) -> None:
    path_params: Dict[str, ParameterDescriptor] = {}
    for p in parameters:
        if p.kind is not BindingKind.PATH:
            continue
        if p.alias not in placeholders:
            raise fail(
                f"parameter '{p.name}' is bound to placeholder '{{{p.alias}}}' "
                "which the route does not contain",
                "ROUTE_PLACEHOLDER_MISSING",
            )
        if p.alias in path_params:
            raise fail(
                f"placeholder '{{{p.alias}}}' is bound by both "
                f"'{path_params[p.alias].name}' and '{p.name}'",
                "BINDING_OVERLAP",
            )
        path_params[p.alias] = p

    for placeholder in placeholders:
        if placeholder not in path_params:
            raise fail(
                f"route placeholder '{{{placeholder}}}' has no matching path parameter",
                "ROUTE_PLACEHOLDER_UNBOUND",
            )

    bodies = [p for p in parameters if p.kind is BindingKind.BODY]
    if len(bodies) > 1:
        names = ", ".join(p.name for p in bodies)
        raise fail(f"more than one body parameter ({names})", "BODY_MULTIPLE")
    if bodies and http_method in _BODYLESS_VERBS:
        raise fail(f"{http_method} requests cannot carry a body", "BODY_NOT_ALLOWED")

    if len([p for p in parameters if p.kind is BindingKind.CANCEL]) > 1:
        raise fail("more than one cancellation token parameter", "CANCEL_MULTIPLE")


def _split_annotated(hint: Any) -> Tuple[Any, List[Binding]]:
    """Strip Annotated[...] and collect binding markers (classes are instantiated)."""
    if get_origin(hint) is not Annotated:
        return hint, []

    base, *extras = get_args(hint)
    markers: List[Binding] = []
    for extra in extras:
        if isinstance(extra, type) and issubclass(extra, Binding):
            extra = extra()
        if isinstance(extra, Binding):
            markers.append(extra)
    return base, markers


def _infer_kind(
    name: str,
    annotation: Any,
    placeholders: Tuple[str, ...],
    http_method: str,
) -> BindingKind:
    """Binding for a parameter without an explicit marker."""
    if name in placeholders:
        return BindingKind.PATH

    base = _unwrap_optional(annotation)
    if isinstance(base, type):
        if issubclass(base, CancellationToken):
            return BindingKind.CANCEL
        if issubclass(base, RequestPart):
            return BindingKind.PASSTHROUGH

    if http_method not in _BODYLESS_VERBS and _is_structured(base):
        return BindingKind.BODY
    return BindingKind.QUERY


def _is_structured(annotation: Any) -> bool:
    if isinstance(annotation, type) and dataclasses.is_dataclass(annotation):
        return True
    origin = get_origin(annotation) or annotation
    return origin in (dict, list) or (isinstance(origin, type) and issubclass(origin, Mapping))


def _unwrap_optional(annotation: Any) -> Any:
    if get_origin(annotation) is Union or type(annotation).__name__ == "UnionType":
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _header_name(name: str) -> str:
    return "-".join(part.capitalize() for part in name.split("_") if part)


def _join_route(prefix: str, path: str) -> str:
    """
    Join interface prefix and method path.

    Absolute URLs in the method path ignore the prefix. A trailing slash
    on the method path is preserved.
    """
    if "://" in path:
        return path

    parts = [part.strip("/") for part in (prefix, path) if part and part.strip("/")]
    if not parts:
        return ""
    joined = "/" + "/".join(parts)
    if path.endswith("/"):
        joined += "/"
    return joined


def _type_name(annotation: Any) -> str:
    if annotation is Any:
        return "Any"
    if annotation is None or annotation is type(None):
        return "None"
    if isinstance(annotation, type) and not get_args(annotation):
        return annotation.__name__
    return repr(annotation).replace("typing.", "")


# Process-wide resolver
_default_resolver = MetadataResolver()


def get_resolver() -> MetadataResolver:
    return _default_resolver


def describe_interface(interface: Any) -> InterfaceContract:
    """Resolve (or fetch the cached) contract of ``interface``."""
    return _default_resolver.describe_interface(interface)


def resolve_method(interface: type, func: Callable) -> MethodDescriptor:
    """Resolve (or fetch the cached) descriptor of one interface method."""
    return _default_resolver.resolve(interface, func)
