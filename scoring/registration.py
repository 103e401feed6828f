"""WHOIS registration probe."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Any

import whois
from whois.exceptions import WhoisDomainNotFoundError

from cache import TTLCache, get_cached_or_compute
from security import registrable_domain
from .base import BaseProbe
from .models import Registration

# Shared thread pool for blocking WHOIS calls
_whois_executor = ThreadPoolExecutor(max_workers=5, thread_name_prefix="whois")


def _first(value: Any) -> Any:
    """WHOIS fields may be a single value or a list of them."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _as_date(value: Any) -> date | None:
    value = _first(value)
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


def parse_whois(data: Any) -> Registration:
    """Normalize a python-whois result (object or dict) into a Registration."""
    if data is None:
        return Registration()

    def field_value(name: str) -> Any:
        if isinstance(data, dict):
            return data.get(name)
        return getattr(data, name, None)

    domain_name = _first(field_value("domain_name"))
    if not domain_name:
        return Registration()

    registrar = _first(field_value("registrar"))
    return Registration(
        registered=True,
        expiration_date=_as_date(field_value("expiration_date")),
        registrar=str(registrar) if registrar else None,
    )


class RegistrationProbe(BaseProbe[Registration]):
    """
    Look up WHOIS registration for the registrable part of a domain.

    Used to tell expired registrations apart from never-registered or
    live ones. WHOIS servers are slow and rate limited, so answers are
    cached when a cache is supplied.
    """

    def __init__(self, timeout: float = 15.0, cache: TTLCache[Registration] | None = None):
        super().__init__(timeout=timeout)
        self.cache = cache

    @property
    def name(self) -> str:
        return "WHOIS Registration"

    @property
    def fallback(self) -> Registration:
        return Registration()

    async def _lookup(self, domain: str) -> Registration:
        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(_whois_executor, whois.whois, domain)
        except WhoisDomainNotFoundError:
            # "No match" answers: the name is not registered
            return Registration()
        return parse_whois(data)

    async def _probe(self, domain: str) -> Registration:
        target = registrable_domain(domain)
        if self.cache is None:
            return await self._lookup(target)
        return await get_cached_or_compute(self.cache, target, lambda: self._lookup(target))
