# clickauction/store/stats_repo.py
"""
Durable all-time standings.

Two interchangeable backends behind the same two calls:
- load() -> {name: AllTimeRecord}   (once at startup)
- save(records) -> bool             (per finished round, on reset, on shutdown)

Neither raises: failures are logged and the in-memory book stays authoritative.
"""
from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

from pydantic import TypeAdapter, ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from clickauction.logging_config import get_logger
from clickauction.store.models import AllTimeRecord
from clickauction.store.redis_keys import RK
from clickauction.util.timeutil import now_ms

logger = get_logger(__name__)

Records = Dict[str, AllTimeRecord]

_records_adapter = TypeAdapter(Dict[str, AllTimeRecord])


def decode_records(raw: str | bytes) -> Records:
    """Parse a stored JSON map. Raises ValueError on anything malformed."""
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ValueError(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("stats must be a JSON object")
    try:
        return _records_adapter.validate_python(data)
    except ValidationError as e:
        raise ValueError(str(e)) from e


def encode_records(records: Records, indent: Optional[int] = None) -> str:
    return _records_adapter.dump_json(records, indent=indent).decode("utf-8")


class StatsRepo(Protocol):
    async def load(self) -> Records: ...

    async def save(self, records: Records, *, force: bool = False) -> bool: ...


class RedisStatsRepo:
    def __init__(self, r: Redis, key: str = "click-auction:stats"):
        self.r = r
        self.rk = RK(key)
        self._lock = asyncio.Lock()

    async def load(self) -> Records:
        try:
            raw = await self.r.get(self.rk.stats())
        except RedisError as e:
            logger.error("Stats load failed", backend="redis", error=str(e))
            return {}
        if raw is None:
            logger.warning("No stats found in Redis", key=self.rk.stats())
            return {}
        try:
            records = decode_records(raw)
        except ValueError as e:
            logger.warning("Corrupt stats in Redis, starting fresh", key=self.rk.stats(), error=str(e))
            return {}
        logger.info("Stats loaded", backend="redis", records=len(records))
        return records

    async def save(self, records: Records, *, force: bool = False) -> bool:
        # An empty map only gets written on an explicit reset
        if not records and not force:
            logger.warning("Skipping save of empty stats", backend="redis")
            return False
        payload = encode_records(records)
        try:
            async with self._lock:
                if force:
                    previous = await self.r.get(self.rk.stats())
                    if previous is not None:
                        await self.r.set(self.rk.stats_backup(), previous)
                await self.r.set(self.rk.stats(), payload)
        except RedisError as e:
            logger.error("Stats save failed", backend="redis", error=str(e))
            return False
        logger.info("Stats saved", backend="redis", records=len(records))
        return True


class FileStatsRepo:
    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        # saves land in call order, one at a time
        self._lock = asyncio.Lock()

    def _read(self) -> Records:
        if not self.path.exists():
            return {}
        raw = self.path.read_bytes()
        try:
            return decode_records(raw)
        except ValueError as e:
            backup = self.path.with_name(f"{self.path.name}.corrupt.{now_ms()}")
            self.path.rename(backup)
            logger.warning("Corrupt stats file backed up, starting fresh", backup=str(backup), error=str(e))
            return {}

    def _write(self, payload: str) -> None:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=self.path.parent, prefix=self.path.name + ".", suffix=".tmp", delete=False
        ) as fh:
            fh.write(payload)
            tmp = Path(fh.name)
        try:
            tmp.replace(self.path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    async def load(self) -> Records:
        try:
            records = await asyncio.to_thread(self._read)
        except OSError as e:
            logger.error("Stats load failed", backend="file", path=str(self.path), error=str(e))
            return {}
        logger.info("Stats loaded", backend="file", path=str(self.path), records=len(records))
        return records

    async def save(self, records: Records, *, force: bool = False) -> bool:
        payload = encode_records(records, indent=2)
        try:
            async with self._lock:
                await asyncio.to_thread(self._write, payload)
        except OSError as e:
            logger.error("Stats save failed", backend="file", path=str(self.path), error=str(e))
            return False
        logger.debug("Stats saved", backend="file", records=len(records))
        return True
