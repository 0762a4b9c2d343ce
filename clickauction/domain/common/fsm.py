# clickauction/domain/common/fsm.py
from __future__ import annotations

from typing import Optional

from clickauction.domain.common.types import Phase

_TRANSITIONS: dict[Phase, list[Phase]] = {
    "LOBBY": ["STAGE1_COUNTDOWN", "LOBBY"],
    "STAGE1_COUNTDOWN": ["STAGE1_ACTIVE", "LOBBY"],
    "STAGE1_ACTIVE": ["STAGE2_COUNTDOWN", "LOBBY"],
    "STAGE2_COUNTDOWN": ["STAGE2_ACTIVE", "LOBBY"],
    "STAGE2_ACTIVE": ["FINISHED", "LOBBY"],
    "FINISHED": ["STAGE1_COUNTDOWN", "LOBBY"],
}

# What a timer reaching zero leads to
_ON_TIMER_EXPIRY: dict[Phase, Phase] = {
    "STAGE1_COUNTDOWN": "STAGE1_ACTIVE",
    "STAGE1_ACTIVE": "STAGE2_COUNTDOWN",
    "STAGE2_COUNTDOWN": "STAGE2_ACTIVE",
    "STAGE2_ACTIVE": "FINISHED",
}


def can_transition_to(current: Phase, target: Phase) -> bool:
    """
    Validate phase transitions.
    Reset to LOBBY is allowed from everywhere.
    """
    return target in _TRANSITIONS.get(current, [])


def next_on_timer(current: Phase) -> Optional[Phase]:
    """Phase reached when the current phase's countdown hits zero (None if untimed)."""
    return _ON_TIMER_EXPIRY.get(current)
