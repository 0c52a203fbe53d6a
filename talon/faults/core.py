"""
Talon Faults - Core types and fault taxonomy.

Defines:
- Fault base class (structured fault objects)
- FaultDomain (explicit fault domains)
- Severity levels
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """
    Fault severity levels.

    Determines logging level for callers that report faults.
    """
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class FaultDomain:
    """
    Fault domains (taxonomy).

    Identifies the stage of a client call where a fault occurred.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain(name='{self.name}')"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


# Standard Domains
FaultDomain.CONTRACT = FaultDomain("contract", "Interface declaration errors")
FaultDomain.CONFIG = FaultDomain("config", "Client configuration errors")
FaultDomain.TRANSPORT = FaultDomain("transport", "Network and transport failures")
FaultDomain.RESPONSE = FaultDomain("response", "Unsuccessful or rejected responses")
FaultDomain.SERIALIZATION = FaultDomain("serialization", "Body encoding and decoding errors")
FaultDomain.CANCELLATION = FaultDomain("cancellation", "Cancelled calls")


# Domain defaults
DOMAIN_DEFAULTS = {
    FaultDomain.CONTRACT: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.CONFIG: {"severity": Severity.FATAL, "retryable": False},
    FaultDomain.TRANSPORT: {"severity": Severity.ERROR, "retryable": True},
    FaultDomain.RESPONSE: {"severity": Severity.ERROR, "retryable": False},
    FaultDomain.SERIALIZATION: {"severity": Severity.ERROR, "retryable": False},
    FaultDomain.CANCELLATION: {"severity": Severity.INFO, "retryable": False},
}


# ============================================================================
# Fault - Base Class
# ============================================================================

class Fault(Exception):
    """
    Base fault class - structured, typed fault object.

    Every error talon raises is a Fault with:
    - Stable machine-readable code
    - Human-readable message
    - Severity level
    - Domain classification
    - Retry semantics
    - Additional context in ``metadata``

    Example:
        ```python
        raise Fault(
            code="ROUTE_PLACEHOLDER_UNBOUND",
            message="Placeholder {id} has no parameter",
            domain=FaultDomain.CONTRACT,
        )
        ```
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.code = code if code is not None else getattr(self, "code", None)
        self.message = message if message is not None else getattr(self, "message", None)
        self.domain = domain if domain is not None else getattr(self, "domain", None)

        if self.code is None or self.message is None or self.domain is None:
            raise TypeError(f"{self.__class__.__name__} missing required code, message, or domain")

        super().__init__(self.message)

        # Default to ERROR/non-retryable for custom domains
        defaults = DOMAIN_DEFAULTS.get(self.domain, {"severity": Severity.ERROR, "retryable": False})
        self.severity = severity or defaults["severity"]
        self.retryable = retryable if retryable is not None else defaults["retryable"]

        self.metadata = metadata or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(code={self.code!r}, domain={self.domain.value}, "
            f"severity={self.severity.value})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize fault to dictionary.

        Returns:
            Dictionary representation suitable for logging
        """
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "metadata": self.metadata,
        }
