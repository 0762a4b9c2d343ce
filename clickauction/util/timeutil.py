# clickauction/util/timeutil.py
from __future__ import annotations

import time
from datetime import datetime, timezone


def now_ts() -> int:
    """Wall-clock seconds."""
    return int(time.time())


def now_ms() -> int:
    """Wall-clock milliseconds."""
    return int(time.time() * 1000)


def monotonic_ms() -> float:
    """Monotonic milliseconds, for intervals that must not jump with the wall clock."""
    return time.monotonic() * 1000.0


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()
