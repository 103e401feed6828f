from contextlib import asynccontextmanager
from enum import Enum

from fastapi import FastAPI, HTTPException, Query, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from cache import analysis_cache, dns_cache, whois_cache
from config import configure_logging, get_settings
from http_client import close_http_client
from scoring import ScoringScheme, TrafficAnalyzer, build_probes
from scoring.base import BaseProbe
from scoring.models import SocialMentions
from security import (
    DomainValidationError,
    RateLimiter,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
    normalize_domain,
)
from store import SORT_FIELDS, DomainNotFoundError, DomainStore, StoreError, retry_operation

settings = get_settings()
store = DomainStore(settings.database_url)
analyzer = TrafficAnalyzer.from_settings(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown."""
    # Startup
    configure_logging()
    store.init_db()
    yield
    # Shutdown - cleanup resources
    await close_http_client()
    await analysis_cache.clear()
    await whois_cache.clear()
    await dns_cache.clear()
    store.dispose()


app = FastAPI(
    title="Lapsewatch API",
    description="Traffic scoring for expired and available domain names",
    version="0.1.0",
    lifespan=lifespan,
)

# Add security middleware
app.add_middleware(SecurityHeadersMiddleware)

# Rate limit the routes that query third-party sources
rate_limiter = RateLimiter(
    requests_per_minute=settings.rate_limit_per_minute,
    requests_per_hour=settings.rate_limit_per_hour,
)
app.add_middleware(RateLimitMiddleware, rate_limiter=rate_limiter)


class DomainRequest(BaseModel):
    """Request body naming one domain."""
    domain: str

    class Config:
        json_schema_extra = {
            "example": {
                "domain": "example.com"
            }
        }


class DomainAnalysisResponse(BaseModel):
    """A fresh analysis."""
    domain: str
    status: str
    traffic_score: int
    estimated_traffic: int
    archive_snapshots: int
    archive_frequency: float
    indexed_pages: int
    social_mentions: int
    web_presence: int
    mail_score: float
    has_redirect: bool
    redirect_url: str | None
    is_parked: bool
    has_ssl: bool
    has_www: bool
    has_robots_txt: bool
    has_sitemap: bool
    last_checked: str


class DomainRecordResponse(BaseModel):
    """A stored domain row. Signal fields are null until the domain is analyzed."""
    id: int
    domain: str
    status: str
    traffic_score: int | None = None
    estimated_traffic: int | None = None
    archive_snapshots: int | None = None
    archive_frequency: float | None = None
    indexed_pages: int | None = None
    social_mentions: int | None = None
    web_presence: int | None = None
    mail_score: float | None = None
    has_redirect: bool | None = None
    redirect_url: str | None = None
    is_parked: bool | None = None
    has_ssl: bool | None = None
    has_www: bool | None = None
    has_robots_txt: bool | None = None
    has_sitemap: bool | None = None
    last_checked: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class ProxySource(str, Enum):
    ARCHIVE = "archive"
    INDEXING = "indexing"
    SOCIAL = "social"
    FEATURES = "features"


def validated_domain(raw: str) -> str:
    """Normalize a domain from a request, or answer 400."""
    try:
        return normalize_domain(raw)
    except DomainValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


def store_unavailable(e: StoreError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Domain store unavailable: {e}"
    )


_proxy_probes: dict[str, BaseProbe] = {}


def proxy_probe(source: ProxySource) -> BaseProbe:
    """The analyzer's probe for a source, or a standalone one if its scheme does not wire it."""
    probe = analyzer.probes.get(source.value)
    if probe is not None:
        return probe
    if not _proxy_probes:
        _proxy_probes.update(build_probes(ScoringScheme.COMPREHENSIVE, settings))
    return _proxy_probes[source.value]


def probe_payload(source: ProxySource, value) -> dict:
    """JSON body for one probe's normalized output."""
    if source is ProxySource.INDEXING:
        return {"indexed_pages": value}
    if isinstance(value, SocialMentions):
        return {**value.counts, "total": value.total}
    return jsonable_encoder(value)


# ============== API Routes ==============

@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/api/stats")
async def cache_stats():
    """Get cache and performance statistics."""
    return {
        "caches": {
            "analysis": analysis_cache.stats,
            "whois": whois_cache.stats,
            "dns": dns_cache.stats,
        },
        "scoring_scheme": analyzer.scheme.value,
        "status": "healthy",
    }


@app.get("/api/domains", response_model=list[DomainRecordResponse])
def list_domains(
    search: str | None = Query(None, description="Domain search term"),
    min_traffic: int = Query(0, ge=0, description="Minimum estimated monthly visits"),
    sort_by: str = Query("traffic_score", description=f"One of: {', '.join(SORT_FIELDS)}"),
    limit: int = Query(50, ge=1, le=500),
):
    """
    Browse tracked domains.

    Without a search term only available domains are listed. Terms of
    three or more characters match anywhere in the name.
    """
    if sort_by not in SORT_FIELDS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"sort_by must be one of: {', '.join(SORT_FIELDS)}"
        )
    try:
        return store.list_domains(search=search, min_traffic=min_traffic, sort_by=sort_by, limit=limit)
    except StoreError as e:
        raise store_unavailable(e)


@app.get("/api/domains/{domain}", response_model=DomainRecordResponse)
def get_domain(domain: str):
    domain = validated_domain(domain)
    try:
        row = store.get_domain(domain)
    except StoreError as e:
        raise store_unavailable(e)
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Domain {domain} not found"
        )
    return row


@app.post("/api/domains", response_model=DomainRecordResponse, status_code=status.HTTP_201_CREATED)
def add_domain(request: DomainRequest, response: Response):
    """Start tracking a domain. It stays pending until analyzed."""
    domain = validated_domain(request.domain)
    try:
        created = store.add_domain(domain)
        row = store.get_domain(domain)
    except StoreError as e:
        raise store_unavailable(e)
    if not created:
        response.status_code = status.HTTP_200_OK
    return row


@app.post("/api/domains/{domain}/analyze", response_model=DomainRecordResponse)
async def analyze_tracked_domain(domain: str):
    """Re-score a tracked domain and store the result."""
    domain = validated_domain(domain)
    try:
        if not await run_in_threadpool(retry_operation, lambda: store.exists(domain)):
            raise DomainNotFoundError(domain)
        analysis = await analyzer.analyze(domain, use_cache=False)
        return await run_in_threadpool(retry_operation, lambda: store.update_analysis(analysis))
    except DomainNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    except StoreError as e:
        raise store_unavailable(e)


@app.post("/api/analyze/json", response_model=DomainAnalysisResponse)
async def analyze_domain(request: DomainRequest):
    """
    Analyze a domain without storing it.

    Runs every probe the configured scoring scheme wires in (archive
    history, DNS, search indexing, mail setup, root page, social
    mentions, site features) and returns the 0-100 traffic score with
    an estimated monthly visit count.
    """
    domain = validated_domain(request.domain)
    analysis = await analyzer.analyze(domain)
    return analysis.to_dict()


@app.get("/api/quick-check", response_model=DomainAnalysisResponse)
async def quick_check(
    domain: str = Query(..., description="The domain to check", examples=["example.com"])
):
    """
    Fast estimate from the domain name and one DNS lookup.

    Much faster than the full analysis and much rougher.
    """
    domain = validated_domain(domain)
    analysis = await analyzer.quick_analyze(domain)
    return analysis.to_dict()


@app.post("/api/proxy/{source}")
async def proxy_signal(source: ProxySource, request: DomainRequest):
    """
    Run a single signal probe.

    Answers 200 with the normalized signal, or 502 with the error and
    the probe's fallback values when the upstream source failed.
    """
    domain = validated_domain(request.domain)
    result = await proxy_probe(source).check(domain)
    payload = probe_payload(source, result.value)
    if not result.ok:
        return JSONResponse(
            {"error": result.error, **payload},
            status_code=status.HTTP_502_BAD_GATEWAY,
        )
    return payload
