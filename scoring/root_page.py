"""Redirect and parking-page probe for a domain's root URL."""

from urllib.parse import urlparse

import httpx

from http_client import fetch_page
from .base import BaseProbe
from .models import RootPageStatus

# Phrases and parking-service names found on placeholder pages
PARKING_SIGNS = [
    "domain is for sale",
    "buy this domain",
    "domain parking",
    "domain registered",
    "domain owner",
    "domain expired",
    "parkingcrew",
    "sedoparking",
    "hugedomains",
    "undeveloped.com",
]


def detect_parking(content: str) -> bool:
    """Return True if page content matches a known parking-page signature."""
    lowered = content.lower()
    return any(sign in lowered for sign in PARKING_SIGNS)


def detect_redirect(domain: str, final_url: str, redirect_count: int) -> tuple[bool, str | None]:
    """A redirect counts only when it leaves the domain (``www.`` or ``https`` upgrades do not)."""
    if redirect_count <= 0:
        return False, None
    final_host = (urlparse(final_url).hostname or "").lower()
    if domain.lower() in final_host:
        return False, None
    return True, final_url


class RootPageProbe(BaseProbe[RootPageStatus]):
    """
    Fetch ``http://<domain>/`` once, following redirects, and report:
    - whether it forwards to a different site, and where
    - whether it serves a parking / for-sale page
    """

    def __init__(self, timeout: float = 5.0, client: httpx.AsyncClient | None = None):
        super().__init__(timeout=timeout, client=client)

    @property
    def name(self) -> str:
        return "Redirect & Parking"

    @property
    def fallback(self) -> RootPageStatus:
        return RootPageStatus()

    async def _probe(self, domain: str) -> RootPageStatus:
        page = await fetch_page(f"http://{domain}", client=await self._get_client(), timeout=self.timeout)

        has_redirect, redirect_url = detect_redirect(domain, page.final_url, page.redirect_count)
        is_parked = page.status_code == 200 and detect_parking(page.text)

        return RootPageStatus(
            has_redirect=has_redirect,
            redirect_url=redirect_url,
            is_parked=is_parked,
        )
