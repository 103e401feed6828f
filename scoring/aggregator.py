"""Combine probe signals into a bounded 0-100 traffic score."""

import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

from .models import ArchiveHistory, DNSStatus, RootPageStatus, SocialMentions

MIN_SCORE = 0
MAX_SCORE = 100


class ScoringScheme(str, Enum):
    """
    Weighting schemes.

    ARCHIVE_DNS rates a domain from archive activity and whether it
    resolves. COMPREHENSIVE blends archive, search indexing, mail setup
    and root-page behaviour.
    """
    ARCHIVE_DNS = "archive_dns"
    COMPREHENSIVE = "comprehensive"


# ARCHIVE_DNS: (points per unit, cap)
RECENT_ACTIVITY = (40.0, 40.0)
HISTORICAL_PRESENCE = (40.0, 40.0)
WEBSITE_POINTS = 10.0
# (max months since last capture, points), checked in order
RECENCY_TIERS = ((1, 10.0), (3, 5.0), (6, 2.0))
DAYS_PER_MONTH = 30

# COMPREHENSIVE: (points per unit, cap)
ARCHIVE_SNAPSHOTS = (1.5, 15.0)
ARCHIVE_FREQUENCY = (5.0, 10.0)
INDEXED_PAGES = (0.5, 30.0)
MAIL_CONFIG = (2.0, 25.0)
REDIRECT_POINTS = 10.0
PARKED_POINTS = 10.0


@dataclass(frozen=True)
class Signals:
    """Probe values the aggregator works from. Defaults are the probe fallbacks."""
    archive: ArchiveHistory = field(default_factory=ArchiveHistory)
    dns: DNSStatus = field(default_factory=DNSStatus)
    indexed_pages: int = 0
    mail_score: float = 0.0
    root_page: RootPageStatus = field(default_factory=RootPageStatus)
    social: SocialMentions = field(default_factory=SocialMentions)


def capped(value: float, cap: float) -> float:
    """Clamp a sub-score to [0, cap]. NaN counts as nothing."""
    if math.isnan(value):
        return 0.0
    return max(0.0, min(float(value), cap))


def _weighted(amount: float, rule: tuple[float, float]) -> float:
    per_unit, cap = rule
    return capped(float(amount) * per_unit, cap)


def clamp_score(total: float) -> int:
    """Round and clamp a summed score into [0, 100]."""
    if math.isnan(total):
        return MIN_SCORE
    if math.isinf(total):
        return MAX_SCORE if total > 0 else MIN_SCORE
    return max(MIN_SCORE, min(MAX_SCORE, round(total)))


def recency_points(last_seen: date | None, today: date | None = None) -> float:
    """Points for how recently the domain was captured."""
    if last_seen is None:
        return 0.0
    months_ago = ((today or date.today()) - last_seen).days / DAYS_PER_MONTH
    for max_months, points in RECENCY_TIERS:
        if months_ago <= max_months:
            return points
    return 0.0


def archive_dns_breakdown(signals: Signals, today: date | None = None) -> dict[str, float]:
    """Per-component points for the ARCHIVE_DNS scheme."""
    return {
        "recent_activity": _weighted(signals.archive.recent_count, RECENT_ACTIVITY),
        "historical_presence": _weighted(signals.archive.snapshot_count, HISTORICAL_PRESENCE),
        "website": WEBSITE_POINTS if signals.dns.has_website else 0.0,
        "recency": recency_points(signals.archive.last_seen, today),
    }


def comprehensive_breakdown(signals: Signals) -> dict[str, float]:
    """Per-component points for the COMPREHENSIVE scheme."""
    return {
        "archive_snapshots": _weighted(signals.archive.recent_count, ARCHIVE_SNAPSHOTS),
        "archive_frequency": _weighted(signals.archive.frequency, ARCHIVE_FREQUENCY),
        "indexing": _weighted(signals.indexed_pages, INDEXED_PAGES),
        "mail": _weighted(signals.mail_score, MAIL_CONFIG),
        "redirect": REDIRECT_POINTS if signals.root_page.has_redirect else 0.0,
        "parked": PARKED_POINTS if signals.root_page.is_parked else 0.0,
    }


def breakdown(
    signals: Signals,
    scheme: ScoringScheme = ScoringScheme.COMPREHENSIVE,
    today: date | None = None,
) -> dict[str, float]:
    """Return the capped sub-scores the total is built from."""
    scheme = ScoringScheme(scheme)
    if scheme is ScoringScheme.ARCHIVE_DNS:
        return archive_dns_breakdown(signals, today)
    return comprehensive_breakdown(signals)


def aggregate(
    signals: Signals,
    scheme: ScoringScheme = ScoringScheme.COMPREHENSIVE,
    today: date | None = None,
) -> int:
    """Sum the capped sub-scores and clamp the total to [0, 100]."""
    return clamp_score(sum(breakdown(signals, scheme, today).values()))
