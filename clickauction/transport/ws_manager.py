# clickauction/transport/ws_manager.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional

from fastapi import WebSocket

from clickauction.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Conn:
    conn_id: str
    role: str
    ip: str
    ws: WebSocket


class WSManager:
    """
    In-memory connection registry for the one running game.
    - conn_id -> websocket
    - client ip -> open socket count
    Transport-only: no game rules.
    """
    def __init__(self, max_per_ip: int = 210) -> None:
        self.max_per_ip = max_per_ip
        self._conns: Dict[str, Conn] = {}
        self._per_ip: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def add(self, conn_id: str, role: str, ip: str, ws: WebSocket) -> bool:
        """Register a socket. False when its IP is already at the connection limit."""
        async with self._lock:
            if self._per_ip.get(ip, 0) >= self.max_per_ip:
                return False
            self._per_ip[ip] = self._per_ip.get(ip, 0) + 1
            self._conns[conn_id] = Conn(conn_id=conn_id, role=role, ip=ip, ws=ws)
            return True

    async def remove(self, conn_id: str) -> None:
        async with self._lock:
            conn = self._conns.pop(conn_id, None)
            if conn is None:
                return
            left = self._per_ip.get(conn.ip, 0) - 1
            if left <= 0:
                self._per_ip.pop(conn.ip, None)
            else:
                self._per_ip[conn.ip] = left

    async def send_to(self, conn_id: str, event: dict) -> None:
        async with self._lock:
            conn = self._conns.get(conn_id)
        if conn is None:
            return
        await conn.ws.send_json(event)

    async def broadcast(self, event: dict, exclude_conn_id: Optional[str] = None) -> None:
        # copy conns under lock, send outside lock
        async with self._lock:
            conns = list(self._conns.values())

        for c in conns:
            if exclude_conn_id and c.conn_id == exclude_conn_id:
                continue
            try:
                await c.ws.send_json(event)
            except Exception as e:
                # a dead socket is cleaned up by ws.py when its receive loop ends
                logger.debug("Broadcast send failed", conn_id=c.conn_id, error=str(e))

    def conn_ids(self) -> List[str]:
        return list(self._conns.keys())

    def count(self, role: Optional[str] = None) -> int:
        if role is None:
            return len(self._conns)
        return sum(1 for c in self._conns.values() if c.role == role)
