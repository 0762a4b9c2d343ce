# clickauction/store/models.py
from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, ConfigDict


class PlayerStore(BaseModel):
    player_id: str                      # public, stable across reconnects
    conn_id: str                        # current connection, never broadcast
    name: str
    color: str
    ad_message: str
    join_seq: int
    epoch: int = 0                      # round scope the counters below belong to
    taps: int = 0
    reaction_time_ms: Optional[int] = None
    suspicious: bool = False
    suspicion_reason: Optional[str] = None

    def reset_round(self, epoch: int) -> None:
        self.epoch = epoch
        self.taps = 0
        self.reaction_time_ms = None
        self.suspicious = False
        self.suspicion_reason = None


class LeaderboardEntry(BaseModel):
    """
    One ranked row. Frozen so a finished round's board can be handed out
    without anyone mutating it.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    color: str
    taps: int
    reaction_time_ms: Optional[int] = None
    multiplier: float = 1.0
    final_score: float
    suspicious: bool = False
    suspicion_reason: Optional[str] = None
    join_seq: int


class WinnerStore(BaseModel):
    model_config = ConfigDict(frozen=True)

    entry: LeaderboardEntry
    ad_message: str


class AllTimeRecord(BaseModel):
    wins: int = 0
    total_taps: int = 0
    rounds_played: int = 0
    best_round_taps: int = 0
    last_played_at: Optional[str] = None
    best_reaction_ms: Optional[int] = None
    total_final_score: float = 0.0
