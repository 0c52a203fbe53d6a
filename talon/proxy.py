"""
Proxy factory - synthesizes concrete classes for declared interfaces.

Each interface gets one synthesized class, built on first use and cached
for the lifetime of the registry. The class subclasses the interface and
replaces every contract member with a forwarder that binds the call
arguments and hands them to the instance's interceptor.

    registry = ProxyRegistry()
    client = registry.create(Accounts, ApiInterceptor(config))
    isinstance(client, Accounts)   # True
"""

from __future__ import annotations

import functools
import inspect
import logging
import threading
import types
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .contract.metadata import (
    InterfaceContract,
    MetadataResolver,
    MethodDescriptor,
    get_resolver,
)
from .faults import ConfigError, ContractError

logger = logging.getLogger("talon.proxy")


class HttpApiProxy:
    """
    Base of every synthesized proxy class.

    Holds the interceptor all calls are delegated to. The class attribute
    ``__contract__`` carries the resolved InterfaceContract.
    """

    __contract__: InterfaceContract

    def __init__(self, interceptor: Any):
        self._interceptor = interceptor

    @property
    def interceptor(self) -> Any:
        return self._interceptor

    def __repr__(self) -> str:
        return f"<{type(self).__name__} for {self.__contract__.identity} via {self._interceptor!r}>"


@dataclass
class ProxyStats:
    """Registry counters."""
    hits: int = 0
    misses: int = 0
    syntheses: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"hits": self.hits, "misses": self.misses, "syntheses": self.syntheses}


class ProxyRegistry:
    """
    Synthesized proxy classes, at most one per interface.

    Synthesis runs under a lock; concurrent first requests for the same
    interface all observe the class built by whichever got the lock first.

    Args:
        resolver: Metadata resolver (defaults to the process-wide one)
    """

    def __init__(self, resolver: Optional[MetadataResolver] = None):
        self._resolver = resolver or get_resolver()
        self._classes: Dict[type, type] = {}
        self._lock = threading.RLock()
        self.stats = ProxyStats()

    @property
    def resolver(self) -> MetadataResolver:
        return self._resolver

    def get_or_create(self, interface: Any) -> type:
        """
        Return the proxy class for ``interface``, synthesizing it on first use.

        Raises:
            ContractError: If the interface cannot be bound
        """
        cls = self._classes.get(interface) if isinstance(interface, type) else None
        if cls is not None:
            with self._lock:
                self.stats.hits += 1
            return cls

        with self._lock:
            cls = self._classes.get(interface) if isinstance(interface, type) else None
            if cls is not None:
                self.stats.hits += 1
                return cls

            self.stats.misses += 1
            contract = self._resolver.describe_interface(interface)
            cls = self._synthesize(contract)
            self._classes[interface] = cls
            self.stats.syntheses += 1
            logger.debug(
                f"Synthesized {cls.__name__} for {contract.identity} "
                f"({len(contract.methods)} methods)"
            )
            return cls

    def create(self, interface: Any, interceptor: Any) -> Any:
        """
        Build a proxy instance of ``interface`` bound to ``interceptor``.

        Raises:
            ContractError: If the interface cannot be bound
            ConfigError: If the interceptor is missing or has no intercept()
        """
        if interface is None:
            raise ContractError("interface type is required", code="INTERFACE_MISSING")
        if interceptor is None:
            raise ConfigError("an interceptor is required", code="INTERCEPTOR_MISSING", key="interceptor")
        if not callable(getattr(interceptor, "intercept", None)):
            raise ConfigError(
                f"{type(interceptor).__name__} has no intercept() method",
                code="INTERCEPTOR_INVALID",
                key="interceptor",
            )
        return self.get_or_create(interface)(interceptor)

    def _synthesize(self, contract: InterfaceContract) -> type:
        interface = contract.interface
        declared = {
            name: func
            for klass in reversed(interface.__mro__)
            for name, func in vars(klass).items()
            if inspect.isfunction(func)
        }

        namespace: Dict[str, Any] = {
            "__contract__": contract,
            "__module__": interface.__module__,
            "__qualname__": f"{interface.__qualname__}Proxy",
            "__doc__": interface.__doc__,
        }
        for method in contract.methods:
            namespace[method.name] = _make_forwarder(method, declared[method.name])

        return types.new_class(
            f"{interface.__name__}Proxy",
            (HttpApiProxy, interface),
            exec_body=lambda ns: ns.update(namespace),
        )

    def __contains__(self, interface: Any) -> bool:
        return interface in self._classes

    def __len__(self) -> int:
        return len(self._classes)

    def clear(self) -> None:
        """Drop all synthesized classes. Intended for tests."""
        with self._lock:
            self._classes.clear()
            self.stats = ProxyStats()


def _make_forwarder(method: MethodDescriptor, declared: Callable) -> Callable:
    if method.is_async:
        @functools.wraps(declared)
        async def forward(self, *args, **kwargs):
            result = self._interceptor.intercept(method, method.bind(args, kwargs))
            if inspect.isawaitable(result):
                result = await result
            return result
    else:
        @functools.wraps(declared)
        def forward(self, *args, **kwargs):
            return self._interceptor.intercept(method, method.bind(args, kwargs))

    forward.__descriptor__ = method
    forward.__isabstractmethod__ = False
    return forward
