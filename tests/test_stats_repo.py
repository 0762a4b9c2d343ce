import asyncio
import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from clickauction.store.models import AllTimeRecord
from clickauction.store.stats_repo import FileStatsRepo, RedisStatsRepo, decode_records, encode_records


class FakeRedis:
    def __init__(self, data=None, fail=False):
        self.data = dict(data or {})
        self.fail = fail

    async def get(self, key):
        if self.fail:
            raise RedisConnectionError("down")
        return self.data.get(key)

    async def set(self, key, value):
        if self.fail:
            raise RedisConnectionError("down")
        self.data[key] = value.encode("utf-8") if isinstance(value, str) else value
        return True


def test_decode_rejects_non_object():
    with pytest.raises(ValueError):
        decode_records("[1, 2]")
    with pytest.raises(ValueError):
        decode_records("{not json")


def test_encode_decode_keeps_fields():
    records = {"Alice": AllTimeRecord(wins=2, total_taps=90, best_reaction_ms=140, total_final_score=180.5)}
    assert decode_records(encode_records(records)) == records


@pytest.mark.asyncio
async def test_file_repo_missing_file_loads_empty(tmp_path):
    repo = FileStatsRepo(tmp_path / "scores.json")
    assert await repo.load() == {}


@pytest.mark.asyncio
async def test_file_repo_save_then_load(tmp_path):
    path = tmp_path / "scores.json"
    repo = FileStatsRepo(path)

    assert await repo.save({"Bob": AllTimeRecord(wins=1, total_taps=80)}) is True
    assert json.loads(path.read_text(encoding="utf-8"))["Bob"]["wins"] == 1

    loaded = await FileStatsRepo(path).load()
    assert loaded["Bob"].total_taps == 80


@pytest.mark.asyncio
async def test_file_repo_corrupt_file_is_backed_up(tmp_path):
    path = tmp_path / "scores.json"
    path.write_text("{ this is not json", encoding="utf-8")

    repo = FileStatsRepo(path)
    assert await repo.load() == {}

    assert not path.exists()
    backups = list(tmp_path.glob("scores.json.corrupt.*"))
    assert len(backups) == 1
    assert backups[0].read_text(encoding="utf-8") == "{ this is not json"


@pytest.mark.asyncio
async def test_file_repo_save_failure_returns_false(tmp_path):
    repo = FileStatsRepo(tmp_path / "missing-dir" / "scores.json")
    assert await repo.save({"A": AllTimeRecord()}) is False


@pytest.mark.asyncio
async def test_redis_repo_round_trip():
    r = FakeRedis()
    repo = RedisStatsRepo(r, key="click-auction:stats")

    assert await repo.save({"Alice": AllTimeRecord(wins=3)}) is True
    loaded = await repo.load()
    assert loaded["Alice"].wins == 3


@pytest.mark.asyncio
async def test_redis_repo_skips_empty_unless_forced():
    old = encode_records({"Alice": AllTimeRecord(wins=3)}).encode("utf-8")
    r = FakeRedis({"click-auction:stats": old})
    repo = RedisStatsRepo(r, key="click-auction:stats")

    assert await repo.save({}) is False
    assert r.data["click-auction:stats"] == old

    assert await repo.save({}, force=True) is True
    assert r.data["click-auction:stats:previous"] == old
    assert await repo.load() == {}


@pytest.mark.asyncio
async def test_redis_repo_corrupt_value_loads_empty():
    r = FakeRedis({"click-auction:stats": b"\x00garbage"})
    assert await RedisStatsRepo(r).load() == {}


@pytest.mark.asyncio
async def test_redis_repo_errors_are_contained():
    repo = RedisStatsRepo(FakeRedis(fail=True))
    assert await repo.load() == {}
    assert await repo.save({"A": AllTimeRecord()}) is False


@pytest.mark.asyncio
async def test_file_repo_overlapping_saves_land_in_order(tmp_path):
    path = tmp_path / "scores.json"
    repo = FileStatsRepo(path)

    for _ in range(50):
        results = await asyncio.gather(
            repo.save({"Alice": AllTimeRecord(wins=1)}),
            repo.save({}, force=True),
        )
        assert results == [True, True]
        assert json.loads(path.read_text(encoding="utf-8")) == {}

    assert [p.name for p in tmp_path.iterdir()] == ["scores.json"]


class SlowRedis(FakeRedis):
    async def get(self, key):
        await asyncio.sleep(0)
        return await super().get(key)

    async def set(self, key, value):
        await asyncio.sleep(0)
        return await super().set(key, value)


@pytest.mark.asyncio
async def test_redis_repo_overlapping_saves_land_in_order():
    r = SlowRedis()
    repo = RedisStatsRepo(r, key="k")

    await asyncio.gather(
        repo.save({"Alice": AllTimeRecord(wins=1)}),
        repo.save({}, force=True),
    )

    assert await repo.load() == {}
    assert decode_records(r.data["k:previous"])["Alice"].wins == 1
