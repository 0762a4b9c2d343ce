from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/state")
async def game_overview(request: Request):
    """
    Snapshot of the running game (debug/admin).
    """
    engine = request.app.state.engine
    wsman = request.app.state.wsman

    return {
        "phase": engine.phase,
        "round": engine.round_no,
        "epoch": engine.epoch,
        "sessions": len(engine.sessions),
        "disconnected_sessions": engine.sessions.disconnected_count(),
        "connections": {
            "total": wsman.count(),
            "player": wsman.count("player"),
            "host": wsman.count("host"),
            "display": wsman.count("display"),
        },
        "pending_broadcasts": request.app.state.broadcaster.pending(),
        "game": engine.game_state().model_dump(),
    }
