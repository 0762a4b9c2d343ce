from __future__ import annotations

from .engine import GameEngine, PLAYER_COLORS
from .handlers import (
    handle_click,
    handle_start_round,
    handle_reset_round,
    handle_reset_stats,
)

__all__ = [
    "GameEngine",
    "PLAYER_COLORS",
    "handle_click",
    "handle_start_round",
    "handle_reset_round",
    "handle_reset_stats",
]
