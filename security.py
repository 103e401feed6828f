"""Input validation and HTTP hardening for the Lapsewatch API."""

import asyncio
import ipaddress
import re
import time
from collections import defaultdict, deque
from typing import Callable
from urllib.parse import urlparse

import tldextract
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response


# ============== Domain Validation ==============

MAX_DOMAIN_LENGTH = 253

LABEL_PATTERN = re.compile(r'^(?!-)[a-z0-9-]{1,63}(?<!-)$')

# Probes fetch http://<domain>/, so internal names must never get through
BLOCKED_HOSTNAMES = {
    'localhost',
    'localhost.localdomain',
    'metadata.google.internal',
    'metadata.internal',
}

# Offline extractor: uses the bundled public suffix snapshot, never the network
_suffix_extract = tldextract.TLDExtract(suffix_list_urls=())


class DomainValidationError(ValueError):
    """Raised when input is not a usable public domain name."""


def _strip_to_host(raw: str) -> str:
    """Reduce URL-ish input (scheme, path, port, credentials) to a bare host."""
    value = raw.strip()
    if '://' not in value:
        value = f"http://{value}"
    parsed = urlparse(value)
    host = parsed.hostname or ''
    return host.rstrip('.').lower()


def normalize_domain(raw: str) -> str:
    """
    Validate and normalize a domain name.

    Accepts bare names as well as pasted URLs (``https://Example.com/path``)
    and returns the lowercase host without scheme, port, path or trailing dot.

    Raises:
        DomainValidationError: If the input is empty, malformed, an IP
            address, an internal hostname or has no public suffix.
    """
    if not raw or not raw.strip():
        raise DomainValidationError("Domain cannot be empty")

    if any(ch in raw for ch in ('\x00', '\n', '\r')):
        raise DomainValidationError("Domain contains control characters")

    try:
        domain = _strip_to_host(raw)
    except ValueError:
        raise DomainValidationError("Invalid domain format")

    if not domain:
        raise DomainValidationError("Domain must have a hostname")

    if len(domain) > MAX_DOMAIN_LENGTH:
        raise DomainValidationError(f"Domain exceeds maximum length of {MAX_DOMAIN_LENGTH} characters")

    try:
        ipaddress.ip_address(domain)
    except ValueError:
        pass
    else:
        raise DomainValidationError("IP addresses are not domain names")

    if domain in BLOCKED_HOSTNAMES:
        raise DomainValidationError("Internal hostnames are not allowed")

    labels = domain.split('.')
    if len(labels) < 2 or not all(LABEL_PATTERN.match(label) for label in labels):
        raise DomainValidationError(f"Invalid domain name: {domain}")

    if not _suffix_extract(domain).suffix:
        raise DomainValidationError(f"Unknown top-level domain: {domain}")

    return domain


def registrable_domain(domain: str) -> str:
    """Return the registrable part of a host (``www.example.co.uk`` -> ``example.co.uk``)."""
    extracted = _suffix_extract(domain)
    if not extracted.suffix:
        return domain
    return f"{extracted.domain}.{extracted.suffix}"


# ============== Security Headers Middleware ==============

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to every API response."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        # JSON-only API: nothing may be embedded or executed
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"
            response.headers["Pragma"] = "no-cache"

        return response


# ============== Rate Limiting ==============

# Routes that fan out to third-party sources; store reads are not limited
RATE_LIMITED_PREFIXES = ("/api/analyze/", "/api/quick-check", "/api/proxy/")


def is_rate_limited(path: str) -> bool:
    """True for routes that trigger probes (including ``/api/domains/<d>/analyze``)."""
    return path.startswith(RATE_LIMITED_PREFIXES) or (
        path.startswith("/api/domains/") and path.endswith("/analyze")
    )


def client_id(request: Request) -> str:
    """Best-effort client address, honouring proxy headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """
    Sliding-window limits on analyses per client.

    One timestamp queue per client serves both the per-minute and the
    per-hour window; entries older than the longest window are dropped.
    """

    def __init__(
        self,
        requests_per_minute: int = 30,
        requests_per_hour: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.windows = (
            (60.0, requests_per_minute, "minute"),
            (3600.0, requests_per_hour, "hour"),
        )
        self._clock = clock
        self._requests: dict[str, deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    def reset(self) -> None:
        self._requests.clear()

    async def acquire(self, client: str) -> str | None:
        """Record one analysis for ``client``, or return why it is refused."""
        now = self._clock()
        horizon = max(seconds for seconds, _, _ in self.windows)

        async with self._lock:
            stamps = self._requests[client]
            while stamps and now - stamps[0] >= horizon:
                stamps.popleft()

            for seconds, limit, label in self.windows:
                if sum(1 for stamp in stamps if now - stamp < seconds) >= limit:
                    return f"Rate limit exceeded. Max {limit} analyses per {label}."

            stamps.append(now)
            return None


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Answer 429 on probe-triggering routes once a client is over its limits."""

    def __init__(self, app, rate_limiter: RateLimiter):
        super().__init__(app)
        self.rate_limiter = rate_limiter

    async def dispatch(self, request: Request, call_next) -> Response:
        if is_rate_limited(request.url.path):
            error_message = await self.rate_limiter.acquire(client_id(request))
            if error_message is not None:
                return JSONResponse(
                    {"error": error_message},
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    headers={"Retry-After": "60"},
                )

        return await call_next(request)
