from __future__ import annotations

from .store import Session, SessionStore, generate_session_token

__all__ = [
    "Session",
    "SessionStore",
    "generate_session_token",
]
