from __future__ import annotations

from .rate_limit import ClickRateLimiter
from .timing import TimingAnomalyDetector, TimingVerdict, coefficient_of_variation

__all__ = [
    "ClickRateLimiter",
    "TimingAnomalyDetector",
    "TimingVerdict",
    "coefficient_of_variation",
]
