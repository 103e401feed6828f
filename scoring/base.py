"""Base class for all signal probes."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Generic, TypeVar

import httpx

from http_client import get_http_client

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_PROBE_TIMEOUT = 10.0


class ProbeError(Exception):
    """A source answered, but not with something the probe can use."""


class ProbeSkipped(Exception):
    """The probe had nothing to query (no credentials, disabled source)."""


@dataclass(frozen=True)
class ProbeResult(Generic[T]):
    """Outcome of one probe run: its value, or its fallback plus the error."""

    name: str
    value: T
    error: str | None = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def collected(self) -> bool:
        """True when the source was actually queried and answered."""
        return self.ok and not self.skipped


class BaseProbe(ABC, Generic[T]):
    """
    Abstract base class for signal probes.

    A probe queries one external source for one domain. ``check`` bounds
    the query with a timeout and never raises: any failure is logged and
    the probe's documented fallback is returned in its place.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.timeout = timeout
        self._client = client

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of this probe."""

    @property
    @abstractmethod
    def fallback(self) -> T:
        """Value reported when the probe fails."""

    @abstractmethod
    async def _probe(self, domain: str) -> T:
        """
        Query the source for a domain.

        Args:
            domain: Normalized domain name

        Returns:
            The normalized signal value. May raise on any failure.
        """

    async def _get_client(self) -> httpx.AsyncClient:
        return self._client or await get_http_client()

    async def check(self, domain: str) -> ProbeResult[T]:
        """Run the probe with its timeout, degrading to the fallback on failure."""
        try:
            value = await asyncio.wait_for(self._probe(domain), timeout=self.timeout)
        except ProbeSkipped as e:
            logger.debug("%s probe skipped for %s: %s", self.name, domain, e)
            return ProbeResult(name=self.name, value=self.fallback, skipped=True)
        except asyncio.TimeoutError:
            logger.warning("%s probe timed out for %s after %.1fs", self.name, domain, self.timeout)
            return ProbeResult(name=self.name, value=self.fallback, error="timeout")
        except Exception as e:
            logger.warning("%s probe failed for %s: %s", self.name, domain, e)
            return ProbeResult(name=self.name, value=self.fallback, error=str(e) or type(e).__name__)

        return ProbeResult(name=self.name, value=value)
