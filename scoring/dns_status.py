"""DNS-over-HTTPS status probe."""

from typing import Any

import httpx

from cache import TTLCache
from .base import BaseProbe
from .models import DNSStatus

DOH_RESOLVER_URL = "https://dns.google/resolve"

DNS_TYPE_A = 1


def parse_doh_answer(data: Any) -> DNSStatus:
    """
    Interpret a DNS-over-HTTPS JSON answer for an A query.

    Any answer record means the name is delegated; an A record means
    something is serving it.
    """
    if not isinstance(data, dict):
        raise ValueError("Unexpected DNS-over-HTTPS response")

    answers = data.get("Answer") or []
    return DNSStatus(
        has_nameservers=len(answers) > 0,
        has_website=any(record.get("type") == DNS_TYPE_A for record in answers if isinstance(record, dict)),
    )


class DNSStatusProbe(BaseProbe[DNSStatus]):
    """
    Check whether a domain resolves, via a DNS-over-HTTPS resolver.

    NXDOMAIN is a normal answer (no records), not a failure.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        cache: TTLCache[DNSStatus] | None = None,
        resolver_url: str = DOH_RESOLVER_URL,
    ):
        super().__init__(timeout=timeout, client=client)
        self.cache = cache
        self.resolver_url = resolver_url

    @property
    def name(self) -> str:
        return "DNS Status"

    @property
    def fallback(self) -> DNSStatus:
        return DNSStatus()

    async def _probe(self, domain: str) -> DNSStatus:
        if self.cache is not None:
            cached = await self.cache.get(domain)
            if cached is not None:
                return cached

        client = await self._get_client()
        response = await client.get(
            self.resolver_url,
            params={"name": domain, "type": "A"},
            headers={"Accept": "application/dns-json"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        status = parse_doh_answer(response.json())

        if self.cache is not None:
            await self.cache.set(domain, status)

        return status
