# clickauction/store/redis_keys.py
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RK:
    """
    Redis key builder. Base key comes from STATS_REDIS_KEY.
    """
    base: str = "click-auction:stats"

    def stats(self) -> str:
        return self.base  # STRING: JSON map name -> AllTimeRecord

    def stats_backup(self) -> str:
        return f"{self.base}:previous"  # STRING: value before the last admin reset
