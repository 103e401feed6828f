"""Search engine indexing probe."""

import re

import httpx
from bs4 import BeautifulSoup

from http_client import fetch_page
from .base import BaseProbe, ProbeError

SEARCH_ENGINES = {
    "duckduckgo": "https://html.duckduckgo.com/html/?q=site:{domain}",
    "google": "https://www.google.com/search?q=site:{domain}",
}

GOOGLE_NO_RESULTS = "did not match any documents"

DDG_NO_RESULTS_CLASS = "no-results"

RESULT_COUNT_PATTERN = re.compile(r'About ([0-9,]+) results', re.IGNORECASE)

RESULT_MARKER_CLASS = "result__title"


def parse_result_count(html: str) -> int:
    """
    Extract an indexed-page count from a search results page.

    An explicit "no results" marker wins, then an "About N results"
    summary, then a count of result entries on the page.
    """
    soup = BeautifulSoup(html, 'html.parser')
    if soup.find(class_=DDG_NO_RESULTS_CLASS) is not None or GOOGLE_NO_RESULTS in html.lower():
        return 0

    match = RESULT_COUNT_PATTERN.search(html)
    if match:
        return int(match.group(1).replace(',', ''))

    return len(soup.find_all(class_=RESULT_MARKER_CLASS))


class IndexingProbe(BaseProbe[int]):
    """Estimate how many pages of a domain a search engine has indexed."""

    def __init__(
        self,
        engine: str = "duckduckgo",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(timeout=timeout, client=client)
        if engine not in SEARCH_ENGINES:
            raise ValueError(f"Unknown search engine: {engine}")
        self.engine = engine

    @property
    def name(self) -> str:
        return "Search Indexing"

    @property
    def fallback(self) -> int:
        return 0

    async def _probe(self, domain: str) -> int:
        url = SEARCH_ENGINES[self.engine].format(domain=domain)
        page = await fetch_page(url, client=await self._get_client(), timeout=self.timeout)

        if page.status_code != 200:
            raise ProbeError(f"{self.engine} returned {page.status_code}")

        return parse_result_count(page.text)
