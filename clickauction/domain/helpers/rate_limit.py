# clickauction/domain/helpers/rate_limit.py
from __future__ import annotations

from typing import Callable, Dict, Iterable, List

from clickauction.logging_config import get_logger
from clickauction.util.timeutil import monotonic_ms

logger = get_logger(__name__)


class ClickRateLimiter:
    """
    Per-connection sliding-window click counter.

    Keeps the timestamps of accepted clicks inside the trailing window. A click
    is refused (and not recorded) once the window already holds `max_clicks`.
    """

    def __init__(
        self,
        max_clicks: int = 20,
        window_ms: int = 1000,
        clock: Callable[[], float] = monotonic_ms,
    ) -> None:
        self.max_clicks = max_clicks
        self.window_ms = window_ms
        self._clock = clock
        self._clicks: Dict[str, List[float]] = {}

    def check_and_record(self, conn_id: str) -> bool:
        now = self._clock()
        cutoff = now - self.window_ms
        recent = [ts for ts in self._clicks.get(conn_id, []) if ts > cutoff]

        if len(recent) >= self.max_clicks:
            self._clicks[conn_id] = recent
            logger.debug("Click rate limited", conn_id=conn_id, count=len(recent), max_clicks=self.max_clicks)
            return False

        recent.append(now)
        self._clicks[conn_id] = recent
        return True

    def purge(self, conn_id: str) -> None:
        self._clicks.pop(conn_id, None)

    def retain(self, active_conn_ids: Iterable[str]) -> int:
        """Drop state for connections not in `active_conn_ids`. Returns how many were dropped."""
        keep = set(active_conn_ids)
        stale = [cid for cid in self._clicks if cid not in keep]
        for cid in stale:
            del self._clicks[cid]
        return len(stale)

    def tracked(self) -> int:
        return len(self._clicks)
