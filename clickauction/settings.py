# clickauction/settings.py
from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel
import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "y", "on")


class Settings(BaseModel):
    APP_NAME: str = "clickauction-server"

    # Stats storage: Redis when REDIS_URL is set, local JSON file otherwise
    REDIS_URL: str = ""
    STATS_REDIS_KEY: str = "click-auction:stats"
    STATS_FILE: str = "scores.json"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # WebSocket origin policy (comma-separated)
    WS_ALLOWED_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000,null"
    # Dev helper: allow any private LAN IP on the server port
    WS_ALLOW_LAN_ORIGINS: bool = True

    # Player limits
    MAX_PLAYERS: int = 200
    MAX_CONNECTIONS_PER_IP: int = 210

    # Host control
    HOST_PIN: Optional[str] = None

    # Sessions
    RECONNECT_GRACE_MS: int = 30_000
    SESSION_SWEEP_INTERVAL_MS: int = 10_000
    CLEANUP_INTERVAL_MS: int = 60_000

    # Input bounds
    MAX_NAME_LENGTH: int = 50
    MAX_AD_LENGTH: int = 200

    # Rate limiting
    MAX_CLICKS_PER_SECOND: int = 20
    RATE_WINDOW_MS: int = 1000

    # Timing anomaly detection
    MIN_HUMAN_CV: float = 0.15
    MIN_INTERVALS_FOR_ANALYSIS: int = 10
    INTERVAL_BUFFER_SIZE: int = 50

    # Round timing
    TICK_INTERVAL_MS: int = 1000
    STAGE1_DURATION_SEC: int = 10
    STAGE1_COUNTDOWN_SEC: int = 3
    STAGE2_COUNTDOWN_SEC: int = 5
    STAGE2_WINDOW_SEC: int = 5
    REACTION_MULTIPLIERS: List[float] = [2.0, 1.5, 1.25]

    # Broadcast
    ALL_TIME_TOP_N: int = 20


def _env_floats(name: str, default: str) -> List[float]:
    return [float(x) for x in os.getenv(name, default).split(",") if x.strip()]


def get_settings() -> Settings:
    return Settings(
        APP_NAME=os.getenv("APP_NAME", "clickauction-server"),
        REDIS_URL=os.getenv("REDIS_URL", ""),
        STATS_REDIS_KEY=os.getenv("STATS_REDIS_KEY", "click-auction:stats"),
        STATS_FILE=os.getenv("STATS_FILE", "scores.json"),
        HOST=os.getenv("HOST", "0.0.0.0"),
        PORT=int(os.getenv("PORT", "3000")),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        LOG_JSON=_env_bool("LOG_JSON", "false"),

        WS_ALLOWED_ORIGINS=os.getenv(
            "WS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,null",
        ),
        WS_ALLOW_LAN_ORIGINS=_env_bool("WS_ALLOW_LAN_ORIGINS", "true"),

        MAX_PLAYERS=int(os.getenv("MAX_PLAYERS", "200")),
        MAX_CONNECTIONS_PER_IP=int(os.getenv("MAX_CONNECTIONS_PER_IP", "210")),
        HOST_PIN=os.getenv("HOST_PIN") or None,

        RECONNECT_GRACE_MS=int(os.getenv("RECONNECT_GRACE_MS", "30000")),
        SESSION_SWEEP_INTERVAL_MS=int(os.getenv("SESSION_SWEEP_INTERVAL_MS", "10000")),
        CLEANUP_INTERVAL_MS=int(os.getenv("CLEANUP_INTERVAL_MS", "60000")),

        MAX_NAME_LENGTH=int(os.getenv("MAX_NAME_LENGTH", "50")),
        MAX_AD_LENGTH=int(os.getenv("MAX_AD_LENGTH", "200")),

        MAX_CLICKS_PER_SECOND=int(os.getenv("MAX_CLICKS_PER_SECOND", "20")),
        RATE_WINDOW_MS=int(os.getenv("RATE_WINDOW_MS", "1000")),

        MIN_HUMAN_CV=float(os.getenv("MIN_HUMAN_CV", "0.15")),
        MIN_INTERVALS_FOR_ANALYSIS=int(os.getenv("MIN_INTERVALS_FOR_ANALYSIS", "10")),
        INTERVAL_BUFFER_SIZE=int(os.getenv("INTERVAL_BUFFER_SIZE", "50")),

        TICK_INTERVAL_MS=int(os.getenv("TICK_INTERVAL_MS", "1000")),
        STAGE1_DURATION_SEC=int(os.getenv("STAGE1_DURATION_SEC", "10")),
        STAGE1_COUNTDOWN_SEC=int(os.getenv("STAGE1_COUNTDOWN_SEC", "3")),
        STAGE2_COUNTDOWN_SEC=int(os.getenv("STAGE2_COUNTDOWN_SEC", "5")),
        STAGE2_WINDOW_SEC=int(os.getenv("STAGE2_WINDOW_SEC", "5")),
        REACTION_MULTIPLIERS=_env_floats("REACTION_MULTIPLIERS", "2.0,1.5,1.25"),

        ALL_TIME_TOP_N=int(os.getenv("ALL_TIME_TOP_N", "20")),
    )
