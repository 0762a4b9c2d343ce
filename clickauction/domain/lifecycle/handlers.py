# clickauction/domain/lifecycle/handlers.py
from __future__ import annotations

from typing import List, Optional, Tuple

from clickauction.transport.protocols import (
    InJoin,
    InRejoin,
    InState,
    OutError,
    OutgoingEvent,
    OutRejoinSuccess,
    OutSessionCreated,
    player_view,
)

# Returns: (to_sender, to_room)
Result = Tuple[List[OutgoingEvent], List[OutgoingEvent]]


async def handle_join(*, app, conn_id: Optional[str], role: str, msg: InJoin) -> Result:
    """
    Join:
    - refuse when the game is at capacity or this connection already plays
    - sanitize name/ad, assign color and session
    - unicast the session token; broadcast fresh state
    """
    if not conn_id:
        return [OutError(code="NO_CONN", message="Missing connection id")], []

    if role != "player":
        return [OutError(code="NOT_PLAYER", message="Only player connections can join")], []

    engine = app.state.engine

    if engine.get_player(conn_id) is not None:
        return [OutError(code="ALREADY_JOINED", message="You have already joined")], []

    if engine.is_full():
        return [OutError(code="GAME_FULL", message="Game is full! Maximum players reached.")], []

    player, token = engine.add_player(conn_id, msg.name, msg.ad_message)

    created = OutSessionCreated(token=token, player_id=player.player_id, player=player_view(player))
    return [created], [engine.game_state()]


async def handle_rejoin(*, app, conn_id: Optional[str], role: str, msg: InRejoin) -> Result:
    """
    Reconnect with a session token kept by the client.
    Every refusal carries its own code so the client knows whether to
    retry or fall back to a fresh join.
    """
    if not conn_id:
        return [OutError(code="NO_CONN", message="Missing connection id")], []

    if role != "player":
        return [OutError(code="NOT_PLAYER", message="Only player connections can join")], []

    engine = app.state.engine

    if engine.get_player(conn_id) is not None:
        return [OutError(code="ALREADY_JOINED", message="You have already joined")], []

    ok, code, message = engine.sessions.check_claim(msg.token, conn_id)
    if not ok:
        return [OutError(code=code, message=message)], []

    if engine.is_full():
        return [OutError(code="GAME_FULL", message="Game is full! Maximum players reached.")], []

    player = engine.restore_player(conn_id, msg.token)
    if player is None:
        return [OutError(code="SESSION_EXPIRED", message="Failed to restore session")], []

    success = OutRejoinSuccess(token=msg.token, player_id=player.player_id, player=player_view(player))
    return [success], [engine.game_state()]


async def handle_state(*, app, conn_id: Optional[str], role: str, msg: InState) -> Result:
    return [app.state.engine.game_state()], []


async def handle_disconnect(*, app, conn_id: Optional[str]) -> Result:
    """
    Called by transport when a socket closes.
    Only a departing player changes what everyone sees.
    """
    if not conn_id:
        return [], []

    engine = app.state.engine
    player = engine.remove_connection(conn_id)
    if player is None:
        return [], []
    return [], [engine.game_state()]
