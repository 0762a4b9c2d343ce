# clickauction/domain/helpers/timing.py
"""
Click-timing anomaly detection.

Human tapping has natural jitter; scripted tapping tends toward unnaturally
even intervals. We keep the most recent inter-click intervals per connection
and flag a coefficient of variation (stdev / mean) below a threshold.
The verdict is advisory: it annotates the player, it never discounts taps.
"""
from __future__ import annotations

import statistics
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Iterable, Optional, Sequence

from clickauction.util.timeutil import monotonic_ms

INSUFFICIENT_DATA = "insufficient data"


@dataclass(frozen=True)
class TimingVerdict:
    suspicious: bool
    reason: Optional[str]
    cv: Optional[float]


def coefficient_of_variation(intervals: Sequence[float]) -> Optional[float]:
    """Population stdev over mean; None when the mean is zero (cannot classify)."""
    if not intervals:
        return None
    mean = statistics.fmean(intervals)
    if mean == 0:
        return None
    return statistics.pstdev(intervals, mu=mean) / mean


class TimingAnomalyDetector:
    def __init__(
        self,
        buffer_size: int = 50,
        min_samples: int = 10,
        min_human_cv: float = 0.15,
        clock: Callable[[], float] = monotonic_ms,
    ) -> None:
        self.buffer_size = buffer_size
        self.min_samples = min_samples
        self.min_human_cv = min_human_cv
        self._clock = clock
        self._last_click: Dict[str, float] = {}
        self._intervals: Dict[str, Deque[float]] = {}

    def record_click(self, conn_id: str) -> None:
        now = self._clock()
        last = self._last_click.get(conn_id)
        if last is not None:
            buf = self._intervals.get(conn_id)
            if buf is None:
                buf = self._intervals[conn_id] = deque(maxlen=self.buffer_size)
            buf.append(now - last)
        self._last_click[conn_id] = now

    def classify(self, conn_id: str) -> TimingVerdict:
        intervals = self._intervals.get(conn_id)
        if not intervals or len(intervals) < self.min_samples:
            return TimingVerdict(suspicious=False, reason=INSUFFICIENT_DATA, cv=None)

        cv = coefficient_of_variation(intervals)
        if cv is None:
            return TimingVerdict(suspicious=False, reason=INSUFFICIENT_DATA, cv=None)

        if cv < self.min_human_cv:
            return TimingVerdict(
                suspicious=True,
                reason=f"Click timing too consistent (CV: {cv * 100:.1f}%)",
                cv=cv,
            )
        return TimingVerdict(suspicious=False, reason=None, cv=cv)

    def intervals(self, conn_id: str) -> list[float]:
        return list(self._intervals.get(conn_id, ()))

    def purge(self, conn_id: str) -> None:
        self._last_click.pop(conn_id, None)
        self._intervals.pop(conn_id, None)

    def clear(self) -> None:
        self._last_click.clear()
        self._intervals.clear()

    def retain(self, active_conn_ids: Iterable[str]) -> int:
        keep = set(active_conn_ids)
        stale = [cid for cid in self._last_click if cid not in keep]
        for cid in stale:
            self.purge(cid)
        return len(stale)
