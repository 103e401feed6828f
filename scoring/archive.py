"""Wayback Machine archive history probe."""

import calendar
from datetime import date, datetime
from typing import Any, Callable

import httpx

from .base import BaseProbe
from .models import ArchiveHistory

CDX_API_URL = "https://web.archive.org/cdx/search/cdx"
AVAILABILITY_API_URL = "https://archive.org/wayback/available"

ARCHIVE_VARIANTS = ("cdx", "availability")


def parse_wayback_timestamp(timestamp: str | None) -> date | None:
    """
    Parse a Wayback ``YYYYMMDDhhmmss`` timestamp into a date.

    Only the date part is used. Missing or malformed values give None.
    """
    if not timestamp or len(timestamp) < 8 or not timestamp[:8].isdigit():
        return None
    try:
        return datetime.strptime(timestamp[:8], "%Y%m%d").date()
    except ValueError:
        return None


def months_before(day: date, months: int) -> date:
    """Same calendar day ``months`` months earlier, clamped to month end."""
    year, month_index = divmod(day.year * 12 + (day.month - 1) - months, 12)
    month = month_index + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


class ArchiveProbe(BaseProbe[ArchiveHistory]):
    """
    Count web archive captures of a domain.

    Two variants:
    - ``cdx``: full capture list from the CDX API (one row per day with a
      200 response); counts every capture and those inside the recent window.
    - ``availability``: the availability API's single closest capture;
      cheap but only ever reports 0 or 1 snapshots.

    ``recent_months`` sets what counts as a recent capture. ``frequency``
    is recent captures per month over that window.
    """

    def __init__(
        self,
        variant: str = "cdx",
        recent_months: int = 12,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        today: Callable[[], date] = date.today,
    ):
        super().__init__(timeout=timeout, client=client)
        if variant not in ARCHIVE_VARIANTS:
            raise ValueError(f"Unknown archive variant: {variant}")
        if recent_months < 1:
            raise ValueError("recent_months must be at least 1")
        self.variant = variant
        self.recent_months = recent_months
        self._today = today

    @property
    def name(self) -> str:
        return "Archive History"

    @property
    def fallback(self) -> ArchiveHistory:
        return ArchiveHistory()

    def _recent_cutoff(self) -> date:
        return months_before(self._today(), self.recent_months)

    def _summarize(self, captures: list[date], snapshot_count: int) -> ArchiveHistory:
        cutoff = self._recent_cutoff()
        recent = sum(1 for captured in captures if captured > cutoff)
        return ArchiveHistory(
            snapshot_count=snapshot_count,
            recent_count=recent,
            frequency=recent / self.recent_months,
            last_seen=max(captures) if captures else None,
        )

    def parse_cdx(self, rows: Any) -> ArchiveHistory:
        """Summarize a CDX JSON body (header row followed by ``[timestamp]`` rows)."""
        if not isinstance(rows, list):
            raise ValueError("Unexpected CDX response")
        if len(rows) <= 1:
            return ArchiveHistory()

        captures: list[date] = []
        for row in rows[1:]:
            timestamp = row[0] if isinstance(row, list) and row else None
            captured = parse_wayback_timestamp(timestamp)
            if captured is not None:
                captures.append(captured)

        return self._summarize(captures, snapshot_count=len(captures))

    def parse_availability(self, data: Any) -> ArchiveHistory:
        """Summarize an availability API body."""
        if not isinstance(data, dict):
            raise ValueError("Unexpected availability response")

        closest = (data.get("archived_snapshots") or {}).get("closest") or {}
        captured = parse_wayback_timestamp(closest.get("timestamp"))
        if captured is None or not closest.get("available"):
            return ArchiveHistory()

        return self._summarize([captured], snapshot_count=1)

    async def _probe(self, domain: str) -> ArchiveHistory:
        client = await self._get_client()
        headers = {"Accept": "application/json"}

        if self.variant == "cdx":
            params = {
                "url": domain,
                "output": "json",
                "fl": "timestamp",
                "filter": "statuscode:200",
                "collapse": "timestamp:8",
            }
            response = await client.get(CDX_API_URL, params=params, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            # An empty body means no captures at all
            if not response.content.strip():
                return ArchiveHistory()
            return self.parse_cdx(response.json())

        response = await client.get(AVAILABILITY_API_URL, params={"url": domain}, headers=headers, timeout=self.timeout)
        response.raise_for_status()
        return self.parse_availability(response.json())
