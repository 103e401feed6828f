"""Social platform mention probe."""

import asyncio
import logging

import httpx

from .base import BaseProbe, ProbeError, ProbeSkipped
from .models import SocialMentions

logger = logging.getLogger(__name__)

TWITTER_SEARCH_URL = "https://api.twitter.com/2/tweets/search/recent"
FACEBOOK_OEMBED_URL = "https://graph.facebook.com/v18.0/oembed_page"
LINKEDIN_SHARES_URL = "https://api.linkedin.com/v2/shares"

PLATFORMS = ("twitter", "facebook", "linkedin")


class SocialMentionsProbe(BaseProbe[SocialMentions]):
    """
    Count mentions of a domain on social platforms.

    Platforms are queried concurrently and independently: a failing
    platform counts 0 without affecting the others. Platforms without
    credentials are skipped, and with none configured the whole probe is
    skipped. The probe itself only fails when every platform it tried
    failed.
    """

    def __init__(
        self,
        twitter_bearer_token: str | None = None,
        facebook_access_token: str | None = None,
        linkedin_access_token: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.twitter_bearer_token = twitter_bearer_token
        self.facebook_access_token = facebook_access_token
        self.linkedin_access_token = linkedin_access_token

    @property
    def name(self) -> str:
        return "Social Mentions"

    @property
    def fallback(self) -> SocialMentions:
        return SocialMentions(counts={platform: 0 for platform in PLATFORMS})

    async def _twitter(self, client: httpx.AsyncClient, domain: str) -> int:
        response = await client.get(
            TWITTER_SEARCH_URL,
            params={"query": f"url:{domain}"},
            headers={"Authorization": f"Bearer {self.twitter_bearer_token}"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return int((response.json().get("meta") or {}).get("result_count") or 0)

    async def _facebook(self, client: httpx.AsyncClient, domain: str) -> int:
        response = await client.get(
            FACEBOOK_OEMBED_URL,
            params={"url": f"https://{domain}", "access_token": self.facebook_access_token},
            timeout=self.timeout,
        )
        response.raise_for_status()
        # oEmbed only tells us a page exists for the domain
        return 1

    async def _linkedin(self, client: httpx.AsyncClient, domain: str) -> int:
        response = await client.get(
            LINKEDIN_SHARES_URL,
            params={"q": "domain", "domain": domain},
            headers={"Authorization": f"Bearer {self.linkedin_access_token}"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return int(response.json().get("total") or 0)

    def _configured(self) -> dict[str, object]:
        checks = {
            "twitter": (self.twitter_bearer_token, self._twitter),
            "facebook": (self.facebook_access_token, self._facebook),
            "linkedin": (self.linkedin_access_token, self._linkedin),
        }
        return {platform: check for platform, (token, check) in checks.items() if token}

    async def _probe(self, domain: str) -> SocialMentions:
        checks = self._configured()
        if not checks:
            raise ProbeSkipped("no social platform configured")

        counts = {platform: 0 for platform in PLATFORMS}
        client = await self._get_client()
        platforms = list(checks)
        results = await asyncio.gather(
            *(checks[platform](client, domain) for platform in platforms),
            return_exceptions=True,
        )

        failures = 0
        for platform, result in zip(platforms, results):
            if isinstance(result, Exception):
                failures += 1
                logger.warning("%s mention check failed for %s: %s", platform, domain, result)
                continue
            counts[platform] = max(0, result)

        if failures == len(platforms):
            raise ProbeError("every social platform check failed")

        return SocialMentions(counts=counts)
