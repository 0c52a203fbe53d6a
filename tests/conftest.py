"""
Shared test fixtures and helpers for the Talon test suite.
"""

import pytest
from typing import Any, List

from talon.config import ClientConfig
from talon.contract.metadata import MetadataResolver
from talon.filters import ApiFilter
from talon.proxy import ProxyRegistry
from talon.testing import MockTransport, json_response


HOST = "https://api.test"


# ============================================================================
# Filter Helpers
# ============================================================================


class RecordingFilter(ApiFilter):
    """Appends (name, stage) to a shared journal for ordering assertions."""

    def __init__(self, name: str, journal: List[Any]):
        self.name = name
        self.journal = journal

    async def before_send(self, context):
        self.journal.append((self.name, "before_send"))

    async def after_receive(self, context):
        self.journal.append((self.name, "after_receive"))


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def transport():
    """In-memory transport answering with an empty JSON object by default."""
    return MockTransport(lambda request: json_response({}))


@pytest.fixture
def make_config(transport):
    """Factory for ClientConfig bound to the mock transport."""
    def _make(**kwargs):
        kwargs.setdefault("http_host", HOST)
        kwargs.setdefault("transport", transport)
        return ClientConfig(**kwargs)
    return _make


@pytest.fixture
def config(make_config):
    return make_config()


@pytest.fixture
def resolver():
    """Isolated metadata resolver."""
    return MetadataResolver()


@pytest.fixture
def registry(resolver):
    """Isolated proxy registry."""
    return ProxyRegistry(resolver)


@pytest.fixture
def journal():
    return []


@pytest.fixture
def recorder(journal):
    """Factory for RecordingFilter instances sharing the journal."""
    def _make(name: str) -> RecordingFilter:
        return RecordingFilter(name, journal)
    return _make
