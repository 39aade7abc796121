from __future__ import annotations

import asyncio

import fakeredis
import pytest

from conftest import FakeClock
from fixcache.cache import FixProneCache
from fixcache.errors import BatchLimitError, WriteConflictError
from fixcache.models import CacheEntry, Repository
from fixcache.store import put_items
from fixcache.store.redis_store import RedisCacheStore, RedisRepoStore

REPO = 7


@pytest.fixture
def redis_client():
    return fakeredis.FakeAsyncRedis(decode_responses=True)


@pytest.fixture
def redis_cache_store(redis_client) -> RedisCacheStore:
    return RedisCacheStore(redis_client)


@pytest.fixture
def redis_repo_store(redis_client) -> RedisRepoStore:
    return RedisRepoStore(redis_client)


def _repo(repo_id: int) -> Repository:
    return Repository(
        id=repo_id,
        name=f"repo-{repo_id}",
        owner="octo",
        installation_id=3,
        tracked_branch="main",
        skip_paths=frozenset({"vendor/"}),
        fix_keywords=frozenset({"fix"}),
    )


@pytest.mark.anyio
async def test_repo_store_round_trip(redis_repo_store) -> None:
    await put_items(redis_repo_store.put_many, [_repo(i) for i in range(30)])

    assert await redis_repo_store.get(29) == _repo(29)
    assert await redis_repo_store.get(404) is None


@pytest.mark.anyio
async def test_repo_store_rejects_oversized_batches(redis_repo_store) -> None:
    with pytest.raises(BatchLimitError):
        await redis_repo_store.put_many([_repo(i) for i in range(26)])
    assert await redis_repo_store.get(0) is None


@pytest.mark.anyio
async def test_fetch_respects_limit_and_admission_order(redis_cache_store) -> None:
    await redis_cache_store.put_many([CacheEntry(REPO, f"f{i}.py", 1, i) for i in range(5)])

    fetched = [entry.file async for entry in redis_cache_store.fetch(REPO, 3)]
    assert fetched == ["f0.py", "f1.py", "f2.py"]


@pytest.mark.anyio
async def test_put_many_upserts_in_place(redis_cache_store) -> None:
    await redis_cache_store.put_many([CacheEntry(REPO, "a.py", 1, 1), CacheEntry(REPO, "b.py", 1, 1)])
    await redis_cache_store.put_many([CacheEntry(REPO, "a.py", 4, 9), CacheEntry(REPO, "c.py", 1, 9)])

    rows = [(e.file, e.hit_count) async for e in redis_cache_store.fetch(REPO, 10)]
    assert rows == [("a.py", 4), ("b.py", 1), ("c.py", 1)]
    assert await redis_cache_store.version(REPO) == 2


@pytest.mark.anyio
async def test_cache_put_many_rejects_oversized_batches(redis_cache_store) -> None:
    with pytest.raises(BatchLimitError):
        await redis_cache_store.put_many([CacheEntry(REPO, f"f{i}.py") for i in range(26)])


@pytest.mark.anyio
async def test_replace_is_versioned(redis_cache_store) -> None:
    version = await redis_cache_store.replace(REPO, [CacheEntry(REPO, "x.py", 1, 1)], expected_version=0)
    assert version == 1

    with pytest.raises(WriteConflictError):
        await redis_cache_store.replace(REPO, [CacheEntry(REPO, "y.py", 1, 1)], expected_version=0)

    snapshot = await redis_cache_store.load(REPO, 10)
    assert snapshot.version == 1
    assert [e.file for e in snapshot.entries] == ["x.py"]


@pytest.mark.anyio
async def test_replace_installs_large_sets_in_order(redis_cache_store) -> None:
    await redis_cache_store.put_many([CacheEntry(REPO, "stale.py", 1, 1)])
    entries = [CacheEntry(REPO, f"f{i:02d}.py", i + 1, i) for i in range(60)]

    await redis_cache_store.replace(REPO, entries, expected_version=1)

    fetched = [(e.file, e.hit_count) async for e in redis_cache_store.fetch(REPO, 100)]
    assert fetched == [(e.file, e.hit_count) for e in entries]


@pytest.mark.anyio
async def test_cache_eviction_over_redis(redis_cache_store) -> None:
    cache = FixProneCache(redis_cache_store, 2, clock=FakeClock())

    await cache.update(REPO, ["a.go", "b.go", "c.go"])
    assert await cache.lookup(REPO) == {"a.go": 1, "b.go": 1}

    await cache.update(REPO, ["a.go"])
    await cache.update(REPO, ["c.go"])
    assert await cache.lookup(REPO) == {"a.go": 2, "c.go": 1}


@pytest.mark.anyio
async def test_two_cache_instances_lose_no_updates(redis_cache_store) -> None:
    # separate instances share only the store, as two processes would
    first = FixProneCache(redis_cache_store, 10, clock=FakeClock(), max_write_attempts=20)
    second = FixProneCache(redis_cache_store, 10, clock=FakeClock(), max_write_attempts=20)

    await asyncio.gather(*((first if i % 2 else second).update(REPO, ["s.py"]) for i in range(10)))

    assert await first.lookup(REPO) == {"s.py": 10}
