"""Mail server configuration probe (MX / SPF / DMARC)."""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import dns.resolver

from .base import BaseProbe

# Shared thread pool for blocking resolver calls
_dns_executor = ThreadPoolExecutor(max_workers=10, thread_name_prefix="mail-dns")

MX_WEIGHT = 2.0
SPF_WEIGHT = 1.5
DMARC_WEIGHT = 1.5

# A name with no records of the asked type; not a failure
_EMPTY_ANSWERS = (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer)


def _txt_value(rdata) -> str:
    return b"".join(rdata.strings).decode("utf-8", errors="ignore")


class MailConfigProbe(BaseProbe[float]):
    """
    Score how much mail infrastructure a domain still carries.

    Each MX record is worth 2, each SPF-bearing TXT record 1.5 and each
    ``_dmarc`` TXT record 1.5. The sum is left uncapped here; the
    aggregator caps it.
    """

    def __init__(self, timeout: float = 10.0, resolver: dns.resolver.Resolver | None = None):
        super().__init__(timeout=timeout)
        self._resolver = resolver

    @property
    def resolver(self) -> dns.resolver.Resolver:
        # Created on first use: reading the system resolver config can fail
        if self._resolver is None:
            self._resolver = dns.resolver.Resolver()
            self._resolver.timeout = self.timeout
            self._resolver.lifetime = self.timeout
        return self._resolver

    @property
    def name(self) -> str:
        return "Mail Configuration"

    @property
    def fallback(self) -> float:
        return 0.0

    def _lookup(self, qname: str, rdtype: str) -> list:
        try:
            return list(self.resolver.resolve(qname, rdtype))
        except _EMPTY_ANSWERS:
            return []

    def _score(self, domain: str) -> float:
        mx_records = self._lookup(domain, "MX")
        spf_records = [
            r for r in self._lookup(domain, "TXT") if "spf" in _txt_value(r).lower()
        ]
        dmarc_records = self._lookup(f"_dmarc.{domain}", "TXT")

        return (
            len(mx_records) * MX_WEIGHT
            + len(spf_records) * SPF_WEIGHT
            + len(dmarc_records) * DMARC_WEIGHT
        )

    async def _probe(self, domain: str) -> float:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(_dns_executor, self._score, domain)
