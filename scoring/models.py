"""Value types produced by probes and the analyzer."""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any


class DomainStatus(str, Enum):
    AVAILABLE = "available"
    REGISTERED = "registered"
    PENDING = "pending"
    EXPIRED = "expired"
    ERROR = "error"


# ============== Probe outputs ==============

@dataclass(frozen=True)
class ArchiveHistory:
    """Web archive capture history for a domain."""
    snapshot_count: int = 0
    recent_count: int = 0
    frequency: float = 0.0  # recent captures per month
    last_seen: date | None = None


@dataclass(frozen=True)
class DNSStatus:
    has_nameservers: bool = False
    has_website: bool = False


@dataclass(frozen=True)
class RootPageStatus:
    """What the domain's root URL serves: a redirect elsewhere and/or a parking page."""
    has_redirect: bool = False
    redirect_url: str | None = None
    is_parked: bool = False


@dataclass(frozen=True)
class SocialMentions:
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())


@dataclass(frozen=True)
class SiteFeatures:
    has_ssl: bool = False
    has_www: bool = False
    has_robots_txt: bool = False
    has_sitemap: bool = False


@dataclass(frozen=True)
class Registration:
    """WHOIS registration facts."""
    registered: bool = False
    expiration_date: date | None = None
    registrar: str | None = None

    def is_expired(self, today: date | None = None) -> bool:
        if self.expiration_date is None:
            return False
        return self.expiration_date < (today or date.today())


# ============== Analysis output ==============

@dataclass(frozen=True)
class AnalysisProgress:
    """Progress event emitted at each analyzer stage transition."""
    step: str
    message: str
    progress: int


@dataclass(frozen=True)
class DomainAnalysis:
    """Complete traffic analysis for one domain. Every field always has a value."""

    domain: str
    status: DomainStatus
    traffic_score: int = 0
    estimated_traffic: int = 0
    archive_snapshots: int = 0
    archive_frequency: float = 0.0
    indexed_pages: int = 0
    social_mentions: int = 0
    web_presence: int = 0
    mail_score: float = 0.0
    has_redirect: bool = False
    redirect_url: str | None = None
    is_parked: bool = False
    has_ssl: bool = False
    has_www: bool = False
    has_robots_txt: bool = False
    has_sitemap: bool = False
    last_checked: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def failed(cls, domain: str) -> "DomainAnalysis":
        """The all-zero record returned when analysis could not run at all."""
        return cls(domain=domain, status=DomainStatus.ERROR)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary."""
        data = asdict(self)
        data["status"] = self.status.value
        data["archive_frequency"] = round(self.archive_frequency, 3)
        data["last_checked"] = self.last_checked.isoformat()
        return data
