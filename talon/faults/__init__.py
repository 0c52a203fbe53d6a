"""
Talon Faults - typed errors for every stage of a client call.

Core exports:
- Fault: Base fault class
- FaultDomain: Domain taxonomy
- Severity: Severity levels

Domain faults:
- ContractError: interface declaration is unusable
- ConfigError: caller configuration is missing or invalid
- TransportError, ResponseError, DeserializationError, CancelledError:
  per-call outcomes
"""

from .core import (
    DOMAIN_DEFAULTS,
    Fault,
    FaultDomain,
    Severity,
)

from .domains import (
    CancelledError,
    ConfigError,
    ContractError,
    DeserializationError,
    ResponseError,
    SerializationError,
    TransportError,
)

__all__ = [
    # Core types
    "Fault",
    "FaultDomain",
    "Severity",
    "DOMAIN_DEFAULTS",

    # Domain faults
    "ContractError",
    "ConfigError",
    "TransportError",
    "ResponseError",
    "DeserializationError",
    "SerializationError",
    "CancelledError",
]
