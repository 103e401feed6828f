"""
Pytest configuration and fixtures for all tests.
"""

import asyncio
import os
import sys
import tempfile

import httpx
import pytest

# Add the project root to Python path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Set up test environment variables before importing any modules
os.environ.setdefault('DATABASE_URL', f"sqlite:///{os.path.join(tempfile.gettempdir(), 'lapsewatch-test.db')}")
os.environ.setdefault('LOG_LEVEL', 'DEBUG')
os.environ.setdefault('WHOIS_ENABLED', 'false')

from scoring.base import BaseProbe  # noqa: E402


class FakeProbe(BaseProbe):
    """Probe returning a fixed value, or failing, without any network access."""

    def __init__(self, name, value, fallback, fail=False, delay=0.0, timeout=1.0):
        super().__init__(timeout=timeout)
        self._name = name
        self._value = value
        self._fallback = fallback
        self.fail = fail
        self.delay = delay
        self.calls = []

    @property
    def name(self):
        return self._name

    @property
    def fallback(self):
        return self._fallback

    async def _probe(self, domain):
        self.calls.append(domain)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError(f"{self._name} unavailable")
        return self._value


@pytest.fixture
def mock_client():
    """Factory for an AsyncClient whose requests are answered by ``handler``."""

    def factory(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)

    return factory


@pytest.fixture
def temp_store(tmp_path):
    """Empty DomainStore backed by a temporary SQLite file."""
    from store import DomainStore

    store = DomainStore(f"sqlite:///{tmp_path / 'domains.db'}")
    store.init_db()
    yield store
    store.dispose()
