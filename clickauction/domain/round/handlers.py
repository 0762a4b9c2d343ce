# clickauction/domain/round/handlers.py
from __future__ import annotations

from typing import List, Optional, Tuple

from clickauction.logging_config import get_logger
from clickauction.transport.protocols import (
    InClick,
    InResetRound,
    InResetStats,
    InStartRound,
    OutError,
    OutgoingEvent,
)

logger = get_logger(__name__)

Result = Tuple[List[OutgoingEvent], List[OutgoingEvent]]


async def handle_click(*, app, conn_id: Optional[str], role: str, msg: InClick) -> Result:
    # Rejected taps are silent: no error, no broadcast
    if not conn_id:
        return [], []
    engine = app.state.engine
    if not engine.click(conn_id):
        return [], []
    return [], [engine.game_state()]


async def handle_start_round(*, app, conn_id: Optional[str], role: str, msg: InStartRound) -> Result:
    engine = app.state.engine
    if not engine.start_round(duration=msg.duration, countdown=msg.countdown):
        logger.warning("Start refused, round in progress", conn_id=conn_id, phase=engine.phase)
        return [OutError(code="ROUND_IN_PROGRESS", message="A round is already in progress")], []
    return [], [engine.game_state()]


async def handle_reset_round(*, app, conn_id: Optional[str], role: str, msg: InResetRound) -> Result:
    engine = app.state.engine
    engine.reset_round()
    return [], [engine.game_state()]


async def handle_reset_stats(*, app, conn_id: Optional[str], role: str, msg: InResetStats) -> Result:
    engine = app.state.engine
    engine.reset_all_time_stats()
    return [], [engine.game_state()]
