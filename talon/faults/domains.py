"""
Talon Faults - Domain-specific fault types.

One concrete fault per failure a client call can produce:
- CONTRACT faults (unusable interface declarations)
- CONFIG faults (missing or invalid caller configuration)
- TRANSPORT faults
- RESPONSE faults
- SERIALIZATION faults
- CANCELLATION faults
"""

from __future__ import annotations

from typing import Any, Optional

from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONTRACT Faults
# ============================================================================

class ContractError(Fault):
    """The declared interface, method or parameter shape is unusable."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "CONTRACT_INVALID",
        interface: Optional[str] = None,
        member: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        where = ".".join(part for part in (interface, member) if part)
        super().__init__(
            code=code,
            message=f"{where}: {message}" if where else message,
            domain=FaultDomain.CONTRACT,
            metadata={"interface": interface, "member": member, **(metadata or {})},
        )
        self.interface = interface
        self.member = member


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigError(Fault):
    """Missing or invalid configuration supplied by the caller."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "CONFIG_INVALID",
        key: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.CONFIG,
            metadata={"key": key, **(metadata or {})},
        )
        self.key = key


# ============================================================================
# Per-call Faults
# ============================================================================

class TransportError(Fault):
    """The transport could not complete the exchange."""

    def __init__(
        self,
        message: str,
        *,
        method: Optional[str] = None,
        url: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code="TRANSPORT_FAILED",
            message=f"{method} {url}: {message}" if method and url else message,
            domain=FaultDomain.TRANSPORT,
            metadata={"method": method, "url": url, **(metadata or {})},
        )
        self.method = method
        self.url = url


class ResponseError(Fault):
    """
    Non-success status, or a post-receive filter rejected the response.

    Carries the response that caused it so callers can inspect status,
    headers and body.
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        response: Any = None,
        code: str = "RESPONSE_UNSUCCESSFUL",
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.RESPONSE,
            retryable=status is not None and status >= 500,
            metadata={"status": status, **(metadata or {})},
        )
        self.status = status
        self.response = response


class DeserializationError(Fault):
    """The response body could not be converted to the declared type."""

    def __init__(
        self,
        message: str,
        *,
        target: Any = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        target_name = getattr(target, "__name__", None) or (repr(target) if target is not None else None)
        super().__init__(
            code="DESERIALIZATION_FAILED",
            message=message,
            domain=FaultDomain.SERIALIZATION,
            metadata={"target": target_name, **(metadata or {})},
        )
        self.target = target


class SerializationError(Fault):
    """An argument could not be encoded into a request body."""

    def __init__(self, message: str, *, metadata: Optional[dict[str, Any]] = None):
        super().__init__(
            code="SERIALIZATION_FAILED",
            message=message,
            domain=FaultDomain.SERIALIZATION,
            severity=Severity.ERROR,
            metadata=metadata,
        )


class CancelledError(Fault):
    """
    The call's cancellation token fired before the call completed.

    Not to be confused with ``asyncio.CancelledError``: this one is an
    ordinary exception delivered as the outcome of a single client call.
    """

    def __init__(self, member: Optional[str] = None, *, reason: Optional[str] = None):
        message = f"Call to '{member}' was cancelled" if member else "Call was cancelled"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            code="CALL_CANCELLED",
            message=message,
            domain=FaultDomain.CANCELLATION,
            metadata={"member": member, "reason": reason},
        )
        self.member = member
        self.reason = reason
