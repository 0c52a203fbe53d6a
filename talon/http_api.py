"""
HttpApi - front door for creating typed clients.

    from talon import GET, HttpApi

    class Accounts:
        @GET("/accounts/{id}")
        def get(self, id: str) -> Account: ...

    accounts = HttpApi.create(Accounts, http_host="https://api.example.com")
    account = accounts.get("7")
"""

from __future__ import annotations

import dataclasses
import importlib
import logging
from typing import Any, Optional, Type, TypeVar, Union

from .config import ClientConfig
from .faults import ConfigError, ContractError
from .interceptor import ApiInterceptor
from .proxy import ProxyRegistry

logger = logging.getLogger("talon.http_api")

T = TypeVar("T")

# Process-wide registry of synthesized proxy classes
_registry = ProxyRegistry()


def get_registry() -> ProxyRegistry:
    return _registry


def resolve_identity(identity: str) -> type:
    """
    Import an interface from its identity string.

    Accepts ``"package.module:QualName"`` (``.`` also accepted as the last
    separator).

    Raises:
        ContractError: If the identity cannot be imported
    """
    if not isinstance(identity, str) or not identity.strip():
        raise ContractError("interface identity must be a non-empty string", code="INTERFACE_MISSING")

    if ":" in identity:
        module_name, _, qualname = identity.partition(":")
    else:
        module_name, _, qualname = identity.rpartition(".")
    if not module_name or not qualname:
        raise ContractError(
            f"invalid interface identity '{identity}', expected 'module:Name'",
            code="INTERFACE_NOT_FOUND",
        )

    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise ContractError(
            f"cannot import module '{module_name}': {e}",
            code="INTERFACE_NOT_FOUND",
            interface=identity,
        ) from e

    for part in qualname.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise ContractError(
                f"'{module_name}' has no attribute '{qualname}'",
                code="INTERFACE_NOT_FOUND",
                interface=identity,
            ) from e
    return target


def create_proxy(interface: Union[type, str], target: Any) -> Any:
    """
    Create a client for ``interface``.

    Args:
        interface: Interface class or its identity string ("pkg.mod:Name")
        target: A ClientConfig, or an interceptor exposing
                ``intercept(descriptor, arguments)``

    Raises:
        ContractError: If the interface cannot be bound
        ConfigError: If the config or interceptor is missing or invalid
    """
    if isinstance(interface, str):
        interface = resolve_identity(interface)
    if target is None:
        raise ConfigError("a ClientConfig or interceptor is required", code="CONFIG_MISSING", key="config")
    if isinstance(target, ClientConfig):
        target = ApiInterceptor(target)
    return _registry.create(interface, target)


class HttpApi:
    """Factory methods for typed HTTP API clients."""

    @staticmethod
    def create(
        interface: Type[T],
        config: Optional[ClientConfig] = None,
        *,
        http_host: Optional[str] = None,
    ) -> T:
        """
        Create a client for ``interface``.

        Args:
            interface: The declared interface class
            config: Client configuration (a default one when omitted)
            http_host: Base address; overrides ``config.http_host`` without
                       modifying the shared config

        Raises:
            ContractError: If the interface cannot be bound
            ConfigError: If ``http_host`` is not an absolute http(s) URL
        """
        if config is None:
            config = ClientConfig()
        elif not isinstance(config, ClientConfig):
            raise ConfigError(
                f"expected ClientConfig, got {type(config).__name__}",
                key="config",
            )
        if http_host:
            config = dataclasses.replace(config, http_host=http_host)
        return create_proxy(interface, config)

    create_proxy = staticmethod(create_proxy)

    @staticmethod
    def registry() -> ProxyRegistry:
        return _registry
