"""Analysis orchestrator: run the probes for a domain, score it, estimate traffic."""

import asyncio
import logging
from datetime import date
from typing import Any, Callable, Iterable

import httpx

from cache import TTLCache, analysis_cache, dns_cache, whois_cache
from config import Settings, get_settings
from security import normalize_domain
from .aggregator import ScoringScheme, Signals, aggregate, clamp_score
from .archive import ArchiveProbe
from .base import BaseProbe, ProbeResult
from .dns_status import DNSStatusProbe
from .estimator import TrafficEstimator
from .features import SiteFeaturesProbe
from .heuristic import heuristic_score
from .indexing import IndexingProbe
from .mail import MailConfigProbe
from .models import (
    AnalysisProgress,
    ArchiveHistory,
    DNSStatus,
    DomainAnalysis,
    DomainStatus,
    RootPageStatus,
    SiteFeatures,
    SocialMentions,
)
from .registration import RegistrationProbe
from .root_page import RootPageProbe
from .social import SocialMentionsProbe

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[AnalysisProgress], Any]

# Fixed checkpoints per stage
PROGRESS_STEPS = {
    "start": ("Starting domain analysis...", 0),
    "probing": ("Collecting signals...", 25),
    "scoring": ("Calculating traffic score...", 75),
    "complete": ("Analysis complete", 100),
    "error": ("Analysis failed", 100),
}

# Quick mode multipliers on the lexical score
RESOLVES_FACTOR = 1.5
UNRESOLVED_FACTOR = 0.8


def build_probes(
    scheme: ScoringScheme,
    settings: Settings | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, BaseProbe]:
    """
    Wire the probes a scheme scores from, keyed by the signal they feed.

    ARCHIVE_DNS only needs archive history and DNS; COMPREHENSIVE adds
    indexing, mail, root page, social and site features. WHOIS is added
    to either when enabled in settings.
    """
    settings = settings or get_settings()
    timeout = settings.probe_timeout

    probes: dict[str, BaseProbe] = {
        "archive": ArchiveProbe(
            variant=settings.archive_variant,
            recent_months=settings.archive_recent_months,
            timeout=timeout,
            client=client,
        ),
        "dns": DNSStatusProbe(timeout=timeout, client=client, cache=dns_cache),
    }

    if ScoringScheme(scheme) is ScoringScheme.COMPREHENSIVE:
        probes.update({
            "indexing": IndexingProbe(engine=settings.indexing_engine, timeout=timeout, client=client),
            "mail": MailConfigProbe(timeout=timeout),
            "root_page": RootPageProbe(timeout=settings.root_page_timeout, client=client),
            "social": SocialMentionsProbe(
                twitter_bearer_token=settings.twitter_bearer_token,
                facebook_access_token=settings.facebook_access_token,
                linkedin_access_token=settings.linkedin_access_token,
                timeout=timeout,
                client=client,
            ),
            "features": SiteFeaturesProbe(timeout=timeout, client=client),
        })

    if settings.whois_enabled:
        probes["registration"] = RegistrationProbe(cache=whois_cache)

    return probes


class TrafficAnalyzer:
    """
    Orchestrates one domain's analysis.

    Stages run ``start -> probing -> scoring -> complete``, or end in
    ``error``. All wired probes run concurrently and each one degrades to
    its fallback on failure, so a partial outage still yields a score.
    ``analyze`` never raises: anything unexpected produces an all-zero
    record with status ``error``.
    """

    def __init__(
        self,
        scheme: ScoringScheme | str = ScoringScheme.COMPREHENSIVE,
        probes: dict[str, BaseProbe] | None = None,
        estimator: TrafficEstimator | None = None,
        cache: TTLCache[DomainAnalysis] | None = None,
        parallel: bool = True,
        batch_size: int = 3,
        batch_pause: float = 0.3,
        today: Callable[[], date] = date.today,
    ):
        self.scheme = ScoringScheme(scheme)
        self.probes = probes if probes is not None else build_probes(self.scheme)
        self.estimator = estimator or TrafficEstimator()
        self.cache = cache
        self.parallel = parallel
        self.batch_size = max(1, batch_size)
        self.batch_pause = batch_pause
        self._today = today
        self._quick_dns = self.probes.get("dns") or DNSStatusProbe(cache=dns_cache)

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        scheme: ScoringScheme | str | None = None,
    ) -> "TrafficAnalyzer":
        """Build an analyzer wired from configuration, with the shared analysis cache."""
        settings = settings or get_settings()
        scheme = ScoringScheme(scheme or settings.scoring_scheme)
        return cls(
            scheme=scheme,
            probes=build_probes(scheme, settings, client),
            cache=analysis_cache,
            batch_size=settings.batch_size,
            batch_pause=settings.batch_pause,
        )

    def _emit(self, on_progress: ProgressCallback | None, step: str) -> None:
        if on_progress is None:
            return
        message, progress = PROGRESS_STEPS[step]
        try:
            on_progress(AnalysisProgress(step=step, message=message, progress=progress))
        except Exception:
            logger.warning("Progress callback failed at step %s", step, exc_info=True)

    async def _run_probes(self, domain: str) -> dict[str, ProbeResult]:
        roles = list(self.probes)
        if self.parallel:
            results = await asyncio.gather(*(self.probes[role].check(domain) for role in roles))
        else:
            results = [await self.probes[role].check(domain) for role in roles]
        return dict(zip(roles, results))

    def _status(self, results: dict[str, ProbeResult], dns: DNSStatus) -> DomainStatus:
        registration = results.get("registration")
        if registration is not None and registration.value.is_expired(self._today()):
            return DomainStatus.EXPIRED
        # Without a DNS answer availability is unknown
        dns_result = results.get("dns")
        if dns_result is None or not dns_result.ok:
            return DomainStatus.PENDING
        if dns.has_nameservers:
            return DomainStatus.REGISTERED
        return DomainStatus.AVAILABLE

    def _build(self, domain: str, results: dict[str, ProbeResult]) -> DomainAnalysis:
        def value(role: str, default: Any) -> Any:
            result = results.get(role)
            return result.value if result is not None else default

        signals = Signals(
            archive=value("archive", ArchiveHistory()),
            dns=value("dns", DNSStatus()),
            indexed_pages=value("indexing", 0),
            mail_score=value("mail", 0.0),
            root_page=value("root_page", RootPageStatus()),
            social=value("social", SocialMentions()),
        )
        features: SiteFeatures = value("features", SiteFeatures())

        score = aggregate(signals, self.scheme, self._today())
        return DomainAnalysis(
            domain=domain,
            status=self._status(results, signals.dns),
            traffic_score=score,
            estimated_traffic=self.estimator.estimate(score),
            archive_snapshots=signals.archive.snapshot_count,
            archive_frequency=signals.archive.frequency,
            indexed_pages=signals.indexed_pages,
            social_mentions=signals.social.total,
            web_presence=signals.indexed_pages + signals.social.total,
            mail_score=signals.mail_score,
            has_redirect=signals.root_page.has_redirect,
            redirect_url=signals.root_page.redirect_url,
            is_parked=signals.root_page.is_parked,
            has_ssl=features.has_ssl,
            has_www=features.has_www,
            has_robots_txt=features.has_robots_txt,
            has_sitemap=features.has_sitemap,
        )

    async def _analyze(
        self,
        domain: str,
        on_progress: ProgressCallback | None,
        use_cache: bool,
    ) -> DomainAnalysis:
        domain = normalize_domain(domain)

        if use_cache and self.cache is not None:
            cached = await self.cache.get(domain)
            if cached is not None:
                self._emit(on_progress, "complete")
                return cached

        self._emit(on_progress, "start")
        self._emit(on_progress, "probing")
        results = await self._run_probes(domain)

        # Skipped probes queried nothing, so they do not count as answers
        if results and not any(result.collected for result in results.values()):
            logger.warning("Every probe failed for %s", domain)
            self._emit(on_progress, "error")
            return DomainAnalysis.failed(domain)

        self._emit(on_progress, "scoring")
        analysis = self._build(domain, results)
        self._emit(on_progress, "complete")

        if self.cache is not None:
            await self.cache.set(domain, analysis)
        return analysis

    async def analyze(
        self,
        domain: str,
        on_progress: ProgressCallback | None = None,
        use_cache: bool = True,
    ) -> DomainAnalysis:
        """
        Analyze one domain.

        Args:
            domain: Domain name (scheme, path and port are stripped)
            on_progress: Called with an AnalysisProgress at each stage
            use_cache: Return a fresh cached analysis when there is one

        Returns:
            A complete DomainAnalysis. Never raises.
        """
        try:
            return await self._analyze(domain, on_progress, use_cache)
        except Exception:
            logger.exception("Analysis failed for %s", domain)
            self._emit(on_progress, "error")
            return DomainAnalysis.failed(domain.strip().lower())

    async def analyze_batch(
        self,
        domains: Iterable[str],
        on_progress: ProgressCallback | None = None,
    ) -> list[DomainAnalysis]:
        """
        Analyze domains in concurrent groups of ``batch_size``.

        Groups are separated by ``batch_pause`` seconds to keep the request
        rate to third-party APIs bounded. Results come back in input order.
        """
        domains = list(domains)
        results: list[DomainAnalysis] = []

        for start in range(0, len(domains), self.batch_size):
            if start:
                await asyncio.sleep(self.batch_pause)
            group = domains[start:start + self.batch_size]
            logger.info(
                "Analyzing domains %d-%d of %d", start + 1, start + len(group), len(domains)
            )
            results.extend(await asyncio.gather(*(self.analyze(d, on_progress) for d in group)))

        return results

    async def quick_analyze(self, domain: str) -> DomainAnalysis:
        """
        Fast estimate from the domain name plus one DNS lookup.

        The lexical score is boosted when the domain resolves and damped
        when it does not. If the DNS check itself fails the domain stays
        ``pending``. Signal fields other than the score are left at zero.
        """
        try:
            domain = normalize_domain(domain)
            dns_result = await self._quick_dns.check(domain)
            resolves = dns_result.value.has_nameservers

            factor = RESOLVES_FACTOR if resolves else UNRESOLVED_FACTOR
            score = clamp_score(heuristic_score(domain) * factor)

            if not dns_result.ok:
                status = DomainStatus.PENDING
            elif resolves:
                status = DomainStatus.REGISTERED
            else:
                status = DomainStatus.AVAILABLE

            return DomainAnalysis(
                domain=domain,
                status=status,
                traffic_score=score,
                estimated_traffic=self.estimator.estimate(score),
            )
        except Exception:
            logger.exception("Quick analysis failed for %s", domain)
            return DomainAnalysis.failed(domain.strip().lower())
