# clickauction/domain/session/store.py
"""
Reconnection sessions.

A session outlives its connection for a bounded grace period so a player
whose phone dropped off Wi-Fi can come back with their taps intact.
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from clickauction.domain.common.timers import Scheduler, TimerHandle
from clickauction.logging_config import get_logger
from clickauction.store.models import PlayerStore
from clickauction.util.timeutil import monotonic_ms, now_ms

logger = get_logger(__name__)

# How long an expired token is still recognised as "expired" rather than unknown
TOMBSTONE_TTL_MS = 10 * 60 * 1000

_B36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(n: int) -> str:
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = _B36[r] + out
        if n == 0:
            return out


def generate_session_token() -> str:
    return "sess_" + secrets.token_urlsafe(18) + _base36(now_ms())


@dataclass
class Session:
    token: str
    owner_conn_id: Optional[str]
    snapshot: PlayerStore
    disconnected_at_ms: Optional[float] = None
    timer: Optional[TimerHandle] = None


class SessionStore:
    def __init__(
        self,
        scheduler: Scheduler,
        grace_ms: int = 30_000,
        clock: Callable[[], float] = monotonic_ms,
    ) -> None:
        self.scheduler = scheduler
        self.grace_ms = grace_ms
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._by_conn: Dict[str, str] = {}
        self._expired: Dict[str, float] = {}  # token -> expired_at_ms

    # ----------------------------
    # Lifecycle
    # ----------------------------
    def create_session(self, conn_id: str, snapshot: PlayerStore) -> str:
        token = generate_session_token()
        self._sessions[token] = Session(
            token=token,
            owner_conn_id=conn_id,
            snapshot=snapshot.model_copy(),
        )
        self._by_conn[conn_id] = token
        return token

    def mark_disconnected(self, conn_id: str, snapshot: Optional[PlayerStore] = None) -> Optional[str]:
        """
        Detach the session owned by `conn_id` and start its grace period.
        Returns the token, or None if the connection owned no session.
        """
        token = self._by_conn.pop(conn_id, None)
        if token is None:
            return None
        session = self._sessions.get(token)
        if session is None:
            return None

        if snapshot is not None:
            session.snapshot = snapshot.model_copy()
        session.owner_conn_id = None
        session.disconnected_at_ms = self._clock()
        self._cancel_timer(session)
        session.timer = self.scheduler.call_later(self.grace_ms / 1000.0, lambda: self.expire(token))
        return token

    def check_claim(self, token: object, conn_id: str) -> Tuple[bool, str, str]:
        """
        Validate a reconnect attempt.
        Returns (ok, err_code, err_message).
        """
        if not isinstance(token, str) or not token:
            return False, "SESSION_INVALID", "Invalid session token"

        session = self._sessions.get(token)
        if session is not None and self._is_past_grace(session):
            self.expire(token)
            session = None

        if session is None:
            if token in self._expired:
                return False, "SESSION_EXPIRED", "Session expired"
            return False, "SESSION_INVALID", "Session not found"

        if session.owner_conn_id is not None and session.owner_conn_id != conn_id:
            return False, "SESSION_IN_USE", "Session already in use"

        return True, "", ""

    def restore(self, token: str, new_conn_id: str) -> Optional[PlayerStore]:
        """
        Claim a session for `new_conn_id`.
        Returns a copy of the preserved player snapshot, or None if the claim is not valid.
        """
        ok, _, _ = self.check_claim(token, new_conn_id)
        if not ok:
            return None
        session = self._sessions[token]
        self._cancel_timer(session)

        old_owner = session.owner_conn_id
        if old_owner is not None:
            self._by_conn.pop(old_owner, None)
        session.owner_conn_id = new_conn_id
        session.disconnected_at_ms = None
        self._by_conn[new_conn_id] = token
        return session.snapshot.model_copy()

    def update_snapshot(self, conn_id: str, snapshot: PlayerStore) -> None:
        token = self._by_conn.get(conn_id)
        if token is not None and token in self._sessions:
            self._sessions[token].snapshot = snapshot.model_copy()

    def expire(self, token: str) -> None:
        session = self._sessions.pop(token, None)
        if session is None:
            return
        self._cancel_timer(session)
        if session.owner_conn_id is not None:
            self._by_conn.pop(session.owner_conn_id, None)
        self._expired[token] = self._clock()
        logger.debug("Session expired", player=session.snapshot.name)

    def sweep(self) -> int:
        """
        Expire every session whose grace period has elapsed, whether or not its
        own timer fired, and forget old tombstones. Returns sessions expired.
        """
        now = self._clock()
        stale = [t for t, s in self._sessions.items() if self._is_past_grace(s, now)]
        for token in stale:
            self.expire(token)
        for token in [t for t, at in self._expired.items() if now - at > TOMBSTONE_TTL_MS]:
            del self._expired[token]
        return len(stale)

    # ----------------------------
    # Queries
    # ----------------------------
    def token_for(self, conn_id: str) -> Optional[str]:
        return self._by_conn.get(conn_id)

    def get(self, token: str) -> Optional[Session]:
        return self._sessions.get(token)

    def __len__(self) -> int:
        return len(self._sessions)

    def disconnected_count(self) -> int:
        return sum(1 for s in self._sessions.values() if s.disconnected_at_ms is not None)

    # ----------------------------
    # Helpers
    # ----------------------------
    def _is_past_grace(self, session: Session, now: Optional[float] = None) -> bool:
        if session.disconnected_at_ms is None:
            return False
        now = self._clock() if now is None else now
        return now - session.disconnected_at_ms >= self.grace_ms

    def _cancel_timer(self, session: Session) -> None:
        if session.timer is not None:
            session.timer.cancel()
            session.timer = None
