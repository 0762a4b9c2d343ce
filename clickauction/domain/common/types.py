# clickauction/domain/common/types.py
from __future__ import annotations

from typing import Literal

Phase = Literal[
    "LOBBY",
    "STAGE1_COUNTDOWN",
    "STAGE1_ACTIVE",
    "STAGE2_COUNTDOWN",
    "STAGE2_ACTIVE",
    "FINISHED",
]

ClientRole = Literal["player", "host", "display"]

# Phases during which a new round may not be started
RUNNING_PHASES: frozenset[str] = frozenset(
    {"STAGE1_COUNTDOWN", "STAGE1_ACTIVE", "STAGE2_COUNTDOWN", "STAGE2_ACTIVE"}
)

# Phases driven by the one-second round timer
TIMED_PHASES = RUNNING_PHASES
