from __future__ import annotations

from .book import AllTimeStats

__all__ = ["AllTimeStats"]
