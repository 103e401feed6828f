"""Offline lexical scoring from the domain name alone."""

import re

from .aggregator import clamp_score

YEAR_PATTERN = re.compile(r"\d{4}")

KNOWN_TLDS = ("com", "net", "org", "io")

# keyword -> points
MARKETING_KEYWORDS = {
    "shop": 5,
    "blog": 5,
}

YEAR_POINTS = 10
KNOWN_TLD_POINTS = 20
SHORT_NAME_POINTS = 15
SHORT_NAME_LENGTH = 15
SUBDOMAIN_PENALTY = -10


def heuristic_breakdown(domain: str) -> dict[str, int]:
    """
    Score lexical features of a domain name.

    Each component is reported even when it contributes nothing, so
    callers (and tests) can see why a name scored what it did.
    """
    name = domain.strip().lower().rstrip(".")

    components = {
        "year_pattern": YEAR_POINTS if YEAR_PATTERN.search(name) else 0,
        "known_tld": KNOWN_TLD_POINTS if name.endswith(tuple(f".{tld}" for tld in KNOWN_TLDS)) else 0,
        "short_name": SHORT_NAME_POINTS if len(name) < SHORT_NAME_LENGTH else 0,
        "subdomains": SUBDOMAIN_PENALTY if name.count(".") > 1 else 0,
    }
    for keyword, points in MARKETING_KEYWORDS.items():
        components[f"keyword_{keyword}"] = points if keyword in name else 0

    return components


def heuristic_score(domain: str) -> int:
    """Rough 0-100 score with zero I/O, for a first estimate before probing."""
    return clamp_score(sum(heuristic_breakdown(domain).values()))
