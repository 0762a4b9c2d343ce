# clickauction/domain/round/scoring.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from clickauction.store.models import LeaderboardEntry, PlayerStore

# Multipliers for the 1st, 2nd, 3rd fastest reaction
DEFAULT_MULTIPLIERS: Tuple[float, ...] = (2.0, 1.5, 1.25)


def _entry(p: PlayerStore, *, multiplier: float, final_score: float) -> LeaderboardEntry:
    return LeaderboardEntry(
        id=p.player_id,
        name=p.name,
        color=p.color,
        taps=p.taps,
        reaction_time_ms=p.reaction_time_ms,
        multiplier=multiplier,
        final_score=final_score,
        suspicious=p.suspicious,
        suspicion_reason=p.suspicion_reason,
        join_seq=p.join_seq,
    )


def live_leaderboard(players: Iterable[PlayerStore]) -> List[LeaderboardEntry]:
    """
    Ranked view of connected players while the round is still running.
    Score is the stage-1 tap count; ties keep join order.
    """
    ordered = sorted(players, key=lambda p: (-p.taps, p.join_seq))
    return [_entry(p, multiplier=1.0, final_score=float(p.taps)) for p in ordered]


def reaction_multipliers(
    players: Iterable[PlayerStore],
    multipliers: Sequence[float] = DEFAULT_MULTIPLIERS,
) -> Dict[str, float]:
    """
    player_id -> multiplier, ranked strictly by reaction time (fastest first,
    ties by join order). Players without a reaction time are not in the map.
    """
    reacted = sorted(
        (p for p in players if p.reaction_time_ms is not None),
        key=lambda p: (p.reaction_time_ms, p.join_seq),
    )
    out: Dict[str, float] = {}
    for rank, p in enumerate(reacted):
        out[p.player_id] = multipliers[rank] if rank < len(multipliers) else 1.0
    return out


def final_score(taps: int, multiplier: float) -> float:
    # Two decimals; exact for the default multipliers
    return round(taps * multiplier, 2)


def final_leaderboard(
    players: Iterable[PlayerStore],
    multipliers: Sequence[float] = DEFAULT_MULTIPLIERS,
) -> Tuple[LeaderboardEntry, ...]:
    players = list(players)
    by_reaction = reaction_multipliers(players, multipliers)
    entries = []
    for p in players:
        m = by_reaction.get(p.player_id, 1.0)
        entries.append(_entry(p, multiplier=m, final_score=final_score(p.taps, m)))
    entries.sort(key=lambda e: (-e.final_score, e.join_seq))
    return tuple(entries)


def pick_winner(board: Sequence[LeaderboardEntry]) -> Optional[LeaderboardEntry]:
    """Top entry, only if it actually scored."""
    if board and board[0].final_score > 0:
        return board[0]
    return None
