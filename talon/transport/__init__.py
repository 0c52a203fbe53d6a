"""
Transports - the wire collaborator of the interceptor.

- Transport: protocol every transport implements
- HttpxTransport: default transport built on httpx
"""

from .base import Transport
from .httpx_transport import HttpxTransport

__all__ = [
    "Transport",
    "HttpxTransport",
]
