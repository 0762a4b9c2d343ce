# clickauction/transport/dispatcher.py
from __future__ import annotations

from typing import Any, Dict, List, Tuple, Optional

from pydantic import ValidationError

from clickauction.logging_config import get_logger
from clickauction.transport.protocols import (
    HOST_MESSAGES,
    parse_incoming,
    OutError,
    OutgoingEvent,
    InJoin,
    InRejoin,
    InClick,
    InState,
    InStartRound,
    InResetRound,
    InResetStats,
)
from clickauction.domain.lifecycle.handlers import (
    handle_join,
    handle_rejoin,
    handle_state,
)
from clickauction.domain.round.handlers import (
    handle_click,
    handle_start_round,
    handle_reset_round,
    handle_reset_stats,
)

logger = get_logger(__name__)

DispatchResult = Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]
# (to_sender_events, to_room_events), each event is JSON dict

_HANDLERS = {
    InJoin: handle_join,
    InRejoin: handle_rejoin,
    InClick: handle_click,
    InState: handle_state,
    InStartRound: handle_start_round,
    InResetRound: handle_reset_round,
    InResetStats: handle_reset_stats,
}


async def dispatch_message(
    *,
    app,
    conn_id: Optional[str],
    role: str,
    raw: Any,
) -> DispatchResult:
    """
    Transport layer calls this.
    - Parses + validates raw JSON
    - Gates host-only commands on the connection's role
    - Routes to the domain handler
    - Returns (to_sender, to_room) events as JSON dicts

    NOTE: This file contains NO game rules.
    """
    try:
        msg = parse_incoming(raw)
    except (ValidationError, ValueError) as e:
        err = OutError(code="BAD_MESSAGE", message=str(e)).model_dump()
        return [err], []

    if isinstance(msg, HOST_MESSAGES) and role != "host":
        logger.warning("Unauthorized host command", conn_id=conn_id, role=role, command=msg.type)
        err = OutError(code="NOT_HOST", message="Only the host can do that").model_dump()
        return [err], []

    handler = _HANDLERS.get(type(msg))
    if handler is None:
        err = OutError(code="NOT_IMPLEMENTED", message=f"Handler not implemented for type={msg.type}").model_dump()
        return [err], []

    to_sender, to_room = await handler(app=app, conn_id=conn_id, role=role, msg=msg)
    return _dump(to_sender), _dump(to_room)


def _dump(events: List[OutgoingEvent]) -> List[Dict[str, Any]]:
    """
    Convert pydantic events -> JSON dicts.
    """
    return [e.model_dump() for e in events]
