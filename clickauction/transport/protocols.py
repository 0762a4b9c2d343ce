# clickauction/transport/protocols.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, ValidationError, field_validator

from clickauction.domain.common.types import ClientRole, Phase


# =========================
# Incoming (Client -> Server)
# =========================

MAX_RAW_TEXT = 2000
MAX_TOKEN_LENGTH = 200


class InBase(BaseModel):
    type: str


def _text_or_empty(v: Any) -> str:
    # Join data is clamped/defaulted downstream, never rejected here
    return v if isinstance(v, str) else ""


# ---- Player ----

class InJoin(InBase):
    type: Literal["join"] = "join"
    name: str = ""
    ad_message: str = ""

    @field_validator("name", "ad_message", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        return _text_or_empty(v)[:MAX_RAW_TEXT]


class InRejoin(InBase):
    type: Literal["rejoin"] = "rejoin"
    token: str = ""

    @field_validator("token", mode="before")
    @classmethod
    def _coerce_token(cls, v: Any) -> str:
        v = _text_or_empty(v)
        return v if len(v) <= MAX_TOKEN_LENGTH else ""


class InClick(InBase):
    type: Literal["click"] = "click"


class InState(InBase):
    type: Literal["state"] = "state"


# ---- Host ----

class InStartRound(InBase):
    """
    Optional overrides are clamped by the engine:
    duration 1-300 s, countdown 1-10 s. Anything non-numeric clamps to the minimum.
    """
    type: Literal["start_round"] = "start_round"
    duration: Optional[Any] = None
    countdown: Optional[Any] = None


class InResetRound(InBase):
    type: Literal["reset_round"] = "reset_round"


class InResetStats(InBase):
    type: Literal["reset_stats"] = "reset_stats"


IncomingMessage = Union[
    InJoin,
    InRejoin,
    InClick,
    InState,
    InStartRound,
    InResetRound,
    InResetStats,
]

HOST_MESSAGES = (InStartRound, InResetRound, InResetStats)


# =========================
# Outgoing (Server -> Client)
# =========================

class OutBase(BaseModel):
    type: str


class OutError(OutBase):
    type: Literal["error"] = "error"
    code: str
    message: str


class OutHello(OutBase):
    type: Literal["hello"] = "hello"
    conn_id: str
    role: ClientRole


class OutSessionCreated(OutBase):
    type: Literal["session_created"] = "session_created"
    token: str
    player_id: str
    player: Dict[str, Any]


class OutRejoinSuccess(OutBase):
    type: Literal["rejoin_success"] = "rejoin_success"
    token: str
    player_id: str
    player: Dict[str, Any]


class OutGameState(OutBase):
    type: Literal["game_state"] = "game_state"
    status: Phase
    time_remaining: int
    round: int
    player_count: int
    leaderboard: List[Dict[str, Any]] = Field(default_factory=list)
    winner: Optional[Dict[str, Any]] = None
    winner_ad: Optional[str] = None
    all_time_leaderboard: List[Dict[str, Any]] = Field(default_factory=list)


OutgoingEvent = Union[
    OutError,
    OutHello,
    OutSessionCreated,
    OutRejoinSuccess,
    OutGameState,
]


# =========================
# Parser helpers
# =========================

_INCOMING_BY_TYPE = {
    "join": InJoin,
    "rejoin": InRejoin,
    "click": InClick,
    "state": InState,
    "start_round": InStartRound,
    "reset_round": InResetRound,
    "reset_stats": InResetStats,
}


def parse_incoming(payload: Dict[str, Any]) -> IncomingMessage:
    """
    Convert raw dict -> validated message model.
    Raises ValidationError if invalid.
    """
    if not isinstance(payload, dict):
        raise ValueError("Message must be a JSON object")

    t = payload.get("type")
    if not isinstance(t, str):
        raise ValidationError.from_exception_data(
            title="IncomingMessage",
            line_errors=[{"loc": ("type",), "input": t, "ctx": {"error": "Missing/invalid type"}, "type": "value_error"}],
        )

    cls = _INCOMING_BY_TYPE.get(t)
    if cls is None:
        raise ValidationError.from_exception_data(
            title="IncomingMessage",
            line_errors=[{"loc": ("type",), "input": t, "ctx": {"error": f"Unknown message type: {t}"}, "type": "value_error"}],
        )

    return cls.model_validate(payload)


def player_view(player) -> Dict[str, Any]:
    """What a player is told about themselves (no connection id)."""
    return player.model_dump(include={"player_id", "name", "color", "ad_message", "taps", "reaction_time_ms"})
