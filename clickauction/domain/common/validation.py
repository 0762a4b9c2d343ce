# clickauction/domain/common/validation.py
from __future__ import annotations

import hmac
import math
import unicodedata
from typing import Any, Iterable, Optional

# Host override bounds (seconds)
MIN_STAGE1_DURATION = 1
MAX_STAGE1_DURATION = 300
MIN_COUNTDOWN_DURATION = 1
MAX_COUNTDOWN_DURATION = 10


def sanitize_text(value: Any, max_length: int) -> str:
    """
    Trim and bound free text from clients.
    Non-strings become "", control characters are dropped.
    """
    if not isinstance(value, str):
        return ""
    cleaned = "".join(ch for ch in value if unicodedata.category(ch)[0] != "C")
    return cleaned.strip()[:max_length].strip()


def clamp_seconds(value: Any, lo: int, hi: int) -> int:
    """Clamp a client-supplied duration; anything non-numeric falls back to the minimum."""
    try:
        num = float(value)
    except (TypeError, ValueError):
        return lo
    if math.isnan(num) or num < lo:
        return lo
    if num > hi:
        return hi
    return int(math.floor(num))


def clamp_stage1_duration(value: Any) -> int:
    return clamp_seconds(value, MIN_STAGE1_DURATION, MAX_STAGE1_DURATION)


def clamp_countdown(value: Any) -> int:
    return clamp_seconds(value, MIN_COUNTDOWN_DURATION, MAX_COUNTDOWN_DURATION)


def unique_name(name: str, taken: Iterable[str], max_length: int) -> str:
    """Suffix " (2)", " (3)", ... until the name no longer collides (case-insensitive)."""
    lowered = {t.casefold() for t in taken}
    if name.casefold() not in lowered:
        return name
    n = 2
    while True:
        suffix = f" ({n})"
        candidate = name[: max(1, max_length - len(suffix))] + suffix
        if candidate.casefold() not in lowered:
            return candidate
        n += 1


def pin_matches(given: Optional[str], expected: Optional[str]) -> bool:
    """Host PIN check. No PIN configured means open access."""
    if not expected:
        return True
    if not given:
        return False
    return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))
