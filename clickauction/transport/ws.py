# clickauction/transport/ws.py
from __future__ import annotations

import json
import uuid
import ipaddress
from urllib.parse import urlparse

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from clickauction.domain.common.validation import pin_matches
from clickauction.domain.lifecycle.handlers import handle_disconnect
from clickauction.logging_config import get_logger
from clickauction.transport.dispatcher import dispatch_message
from clickauction.transport.protocols import OutError, OutHello

router = APIRouter()
logger = get_logger(__name__)

_ROLES = ("player", "host", "display")


def _is_private_ip(host: str) -> bool:
    """Return True if host is a private IP (192.168.x.x, 10.x.x.x, 172.16-31.x.x)."""
    try:
        ip = ipaddress.ip_address(host)
        return ip.is_private
    except ValueError:
        return False


def _client_ip(websocket: WebSocket) -> str:
    forwarded = websocket.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if websocket.client is not None:
        return websocket.client.host
    return "unknown"


async def _check_origin_or_close(websocket: WebSocket) -> bool:
    settings = websocket.app.state.settings
    allowed = {o.strip() for o in settings.WS_ALLOWED_ORIGINS.split(",") if o.strip()}

    origin = websocket.headers.get("origin")
    if origin is not None:
        if origin in allowed:
            return True
        if settings.WS_ALLOW_LAN_ORIGINS:
            o = urlparse(origin)
            host = o.hostname or ""
            if _is_private_ip(host) and o.port == settings.PORT:
                return True
        logger.warning("Origin rejected", origin=origin)
        await websocket.close(code=1008)
        return False
    return True


@router.websocket("/ws")
async def ws_game(websocket: WebSocket):
    if not await _check_origin_or_close(websocket):
        return

    app = websocket.app
    settings = app.state.settings
    wsman = app.state.wsman
    broadcaster = app.state.broadcaster

    role = websocket.query_params.get("role", "player")
    if role not in _ROLES:
        role = "player"
    if role == "host" and not pin_matches(websocket.query_params.get("pin"), settings.HOST_PIN):
        logger.warning("Host connection rejected, bad PIN", ip=_client_ip(websocket))
        await websocket.close(code=1008)
        return

    ip = _client_ip(websocket)
    conn_id = uuid.uuid4().hex[:12]
    await websocket.accept()
    if not await wsman.add(conn_id, role, ip, websocket):
        logger.warning("Connection rejected, per-IP limit reached", ip=ip, limit=wsman.max_per_ip)
        await websocket.close(code=1008)
        return

    try:
        logger.debug("Client connected", conn_id=conn_id, role=role, ip=ip)
        await websocket.send_json(OutHello(conn_id=conn_id, role=role).model_dump())
        await websocket.send_json(app.state.engine.game_state().model_dump())

        while True:
            text = await websocket.receive_text()
            try:
                raw = json.loads(text)
            except json.JSONDecodeError:
                await websocket.send_json(OutError(code="BAD_MESSAGE", message="Invalid JSON").model_dump())
                continue

            to_sender, to_room = await dispatch_message(
                app=app,
                conn_id=conn_id,
                role=role,
                raw=raw,
            )

            # unicast
            for e in to_sender:
                await websocket.send_json(e)

            # everyone, sender included: the payload is identical for all consoles
            for e in to_room:
                broadcaster.publish(e)

    except WebSocketDisconnect:
        pass

    finally:
        _, to_room = await handle_disconnect(app=app, conn_id=conn_id)
        await wsman.remove(conn_id)
        for e in to_room:
            broadcaster.publish(e.model_dump())
        logger.debug("Client disconnected", conn_id=conn_id, role=role)
