"""Signal probes and scoring for domain traffic analysis."""

from .archive import ArchiveProbe
from .dns_status import DNSStatusProbe
from .indexing import IndexingProbe
from .mail import MailConfigProbe
from .root_page import RootPageProbe
from .social import SocialMentionsProbe
from .features import SiteFeaturesProbe
from .registration import RegistrationProbe
from .aggregator import ScoringScheme, Signals, aggregate, breakdown
from .heuristic import heuristic_score
from .estimator import TrafficEstimator, estimate_traffic
from .analyzer import TrafficAnalyzer, build_probes
from .models import AnalysisProgress, DomainAnalysis, DomainStatus

__all__ = [
    "ArchiveProbe",
    "DNSStatusProbe",
    "IndexingProbe",
    "MailConfigProbe",
    "RootPageProbe",
    "SocialMentionsProbe",
    "SiteFeaturesProbe",
    "RegistrationProbe",
    "ScoringScheme",
    "Signals",
    "aggregate",
    "breakdown",
    "heuristic_score",
    "TrafficEstimator",
    "estimate_traffic",
    "TrafficAnalyzer",
    "build_probes",
    "AnalysisProgress",
    "DomainAnalysis",
    "DomainStatus",
]
