"""Site feature probe: SSL, www host, robots.txt and sitemap."""

import asyncio

import httpx

from .base import BaseProbe, ProbeError
from .models import SiteFeatures


class SiteFeaturesProbe(BaseProbe[SiteFeatures]):
    """
    HEAD-check the URLs a maintained site usually answers on.

    A URL that answers with an error status is simply a missing feature.
    The probe fails only when no URL could be reached at all.
    """

    def __init__(self, timeout: float = 10.0, client: httpx.AsyncClient | None = None):
        super().__init__(timeout=timeout, client=client)

    @property
    def name(self) -> str:
        return "Site Features"

    @property
    def fallback(self) -> SiteFeatures:
        return SiteFeatures()

    async def _answers(self, client: httpx.AsyncClient, url: str) -> bool | None:
        """True/False for the response status, None when the request itself failed."""
        try:
            response = await client.head(url, timeout=self.timeout, follow_redirects=True)
        except httpx.HTTPError:
            return None
        return response.is_success

    async def _probe(self, domain: str) -> SiteFeatures:
        client = await self._get_client()
        answers = await asyncio.gather(
            self._answers(client, f"https://{domain}"),
            self._answers(client, f"https://www.{domain}"),
            self._answers(client, f"https://{domain}/robots.txt"),
            self._answers(client, f"https://{domain}/sitemap.xml"),
        )
        if all(answer is None for answer in answers):
            raise ProbeError("no site URL could be reached")

        has_ssl, has_www, has_robots_txt, has_sitemap = (bool(answer) for answer in answers)
        return SiteFeatures(
            has_ssl=has_ssl,
            has_www=has_www,
            has_robots_txt=has_robots_txt,
            has_sitemap=has_sitemap,
        )
