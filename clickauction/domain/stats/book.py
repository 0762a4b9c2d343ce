# clickauction/domain/stats/book.py
from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional

from clickauction.store.models import AllTimeRecord, LeaderboardEntry
from clickauction.util.timeutil import iso_now


class AllTimeStats:
    """
    In-memory all-time standings keyed by display name.
    This copy is authoritative; the stats repo only mirrors it.
    """

    def __init__(
        self,
        records: Optional[Dict[str, AllTimeRecord]] = None,
        clock: Callable[[], str] = iso_now,
    ) -> None:
        self._records: Dict[str, AllTimeRecord] = dict(records or {})
        self._clock = clock
        self._cached: Optional[List[dict]] = None

    def replace(self, records: Dict[str, AllTimeRecord]) -> None:
        self._records = dict(records)
        self._cached = None

    def record_round(self, board: Iterable[LeaderboardEntry], winner_id: Optional[str]) -> int:
        """
        Fold one finished round into the standings.
        Returns how many participants were recorded.
        """
        played_at = self._clock()
        n = 0
        for e in board:
            rec = self._records.get(e.name)
            if rec is None:
                rec = self._records[e.name] = AllTimeRecord()
            rec.rounds_played += 1
            rec.total_taps += e.taps
            rec.best_round_taps = max(rec.best_round_taps, e.taps)
            rec.total_final_score = round(rec.total_final_score + e.final_score, 2)
            rec.last_played_at = played_at
            if e.reaction_time_ms is not None:
                if rec.best_reaction_ms is None or e.reaction_time_ms < rec.best_reaction_ms:
                    rec.best_reaction_ms = e.reaction_time_ms
            if winner_id is not None and e.id == winner_id:
                rec.wins += 1
            n += 1
        if n:
            self._cached = None
        return n

    def clear(self) -> None:
        self._records = {}
        self._cached = None

    def records(self) -> Dict[str, AllTimeRecord]:
        """Deep copy, safe to hand to a background save."""
        return {name: rec.model_copy() for name, rec in self._records.items()}

    def get(self, name: str) -> Optional[AllTimeRecord]:
        return self._records.get(name)

    def leaderboard(self, limit: Optional[int] = None) -> List[dict]:
        # Recomputed only after the standings change
        if self._cached is None:
            ranked = sorted(
                self._records.items(),
                key=lambda kv: (-kv[1].wins, -kv[1].total_final_score, -kv[1].total_taps, kv[0]),
            )
            self._cached = [{"name": name, **rec.model_dump()} for name, rec in ranked]
        rows = self._cached if limit is None else self._cached[:limit]
        return [dict(r) for r in rows]

    def __len__(self) -> int:
        return len(self._records)
