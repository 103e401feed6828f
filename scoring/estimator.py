"""Map a bounded traffic score to an estimated monthly visit count."""

import random

# (minimum score, base visits, jitter width), highest bucket first
TRAFFIC_BUCKETS = [
    (90, 15000, 5000),
    (80, 10000, 5000),
    (70, 5000, 5000),
    (60, 2000, 3000),
    (50, 1000, 1000),
    (40, 500, 500),
    (30, 200, 300),
    (20, 50, 150),
    (10, 0, 50),
]


def _bucket(score: int) -> tuple[int, int]:
    for min_score, base, width in TRAFFIC_BUCKETS:
        if score >= min_score:
            return base, width
    return 0, 0


def traffic_bounds(score: int) -> tuple[int, int]:
    """Smallest and largest estimate possible for a score."""
    base, width = _bucket(score)
    return base, base + max(width - 1, 0)


class TrafficEstimator:
    """
    Turn a score into a visit estimate: the bucket base plus random jitter.

    Estimates are illustrative. The jitter keeps domains in one bucket
    from all reporting the same number. Pass a seeded ``random.Random``
    to get reproducible output.
    """

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def estimate(self, score: int) -> int:
        base, width = _bucket(score)
        if width <= 0:
            return base
        return base + self.rng.randrange(width)


_default_estimator = TrafficEstimator()


def estimate_traffic(score: int) -> int:
    """Estimate with the process-wide random source."""
    return _default_estimator.estimate(score)
