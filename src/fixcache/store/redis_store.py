from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import redis.asyncio as redis
from redis.exceptions import WatchError

from ..constants import Limits
from ..errors import WriteConflictError
from ..models import CacheEntry, Repository
from .base import CacheStore, RepoStore, check_batch, chunked

logger = logging.getLogger(__name__)

KEY_PREFIX = "fixcache"


def _repo_key(repo_id: int) -> str:
    return f"{KEY_PREFIX}:repo:{repo_id}"


def _cache_key(repo_id: int) -> str:
    return f"{KEY_PREFIX}:cache:{repo_id}"


def _version_key(repo_id: int) -> str:
    return f"{KEY_PREFIX}:cache:{repo_id}:version"


def _encode_entry(entry: CacheEntry, seq: int) -> str:
    return json.dumps(
        {"number_of_hits": entry.hit_count, "last_hit": entry.last_hit, "seq": seq},
        separators=(",", ":"),
    )


def _decode_entry(repo_id: int, file: str, raw: str) -> tuple[int, CacheEntry]:
    data: Dict[str, Any] = json.loads(raw)
    entry = CacheEntry.from_record(
        {"repo": repo_id, "file": file, "number_of_hits": data["number_of_hits"], "last_hit": data["last_hit"]}
    )
    return int(data.get("seq", 0)), entry


class RedisRepoStore(RepoStore):
    """Repository metadata as one JSON string per repository."""

    def __init__(self, client: redis.Redis):
        self.redis = client

    async def get(self, repo_id: int) -> Optional[Repository]:
        raw = await self.redis.get(_repo_key(repo_id))
        if raw is None:
            return None
        return Repository.from_record(json.loads(raw))

    async def put_many(self, records: Sequence[Repository]) -> None:
        check_batch(records)
        pipe = self.redis.pipeline(transaction=True)
        for record in records:
            pipe.set(_repo_key(record.id), json.dumps(record.to_record()))
        await pipe.execute()

    async def close(self) -> None:
        await self.redis.aclose()


class RedisCacheStore(CacheStore):
    """
    Cache entries in one hash per repository (field = file path).

    A separate counter holds the entry-set version; `replace` WATCHes it so two
    processes updating the same repository cannot both commit from the same read.
    """

    def __init__(self, client: redis.Redis):
        self.redis = client

    async def _ordered(self, repo_id: int) -> List[tuple[int, CacheEntry]]:
        rows: List[tuple[int, CacheEntry]] = []
        async for file, raw in self.redis.hscan_iter(_cache_key(repo_id), count=Limits.GITHUB_PAGE_SIZE):
            rows.append(_decode_entry(repo_id, file, raw))
        rows.sort(key=lambda row: row[0])
        return rows

    async def fetch(self, repo_id: int, limit: int) -> AsyncIterator[CacheEntry]:
        for _, entry in (await self._ordered(repo_id))[:limit]:
            yield entry

    async def version(self, repo_id: int) -> int:
        raw = await self.redis.get(_version_key(repo_id))
        return int(raw or 0)

    async def put_many(self, entries: Sequence[CacheEntry]) -> None:
        check_batch(entries)
        by_repo: Dict[int, List[CacheEntry]] = {}
        for entry in entries:
            by_repo.setdefault(entry.repo_id, []).append(entry)

        for repo_id, repo_entries in by_repo.items():
            existing = {entry.file: seq for seq, entry in await self._ordered(repo_id)}
            next_seq = max(existing.values(), default=-1) + 1
            mapping: Dict[str, str] = {}
            for entry in repo_entries:
                seq = existing.get(entry.file)
                if seq is None:
                    seq = next_seq
                    next_seq += 1
                mapping[entry.file] = _encode_entry(entry, seq)
            pipe = self.redis.pipeline(transaction=True)
            pipe.hset(_cache_key(repo_id), mapping=mapping)
            pipe.incr(_version_key(repo_id))
            await pipe.execute()

    async def replace(
        self, repo_id: int, entries: Sequence[CacheEntry], expected_version: int
    ) -> int:
        version_key = _version_key(repo_id)
        cache_key = _cache_key(repo_id)
        mapping = [(entry.file, _encode_entry(entry, seq)) for seq, entry in enumerate(entries)]

        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(version_key)
                current = int(await pipe.get(version_key) or 0)
                if current != expected_version:
                    await pipe.unwatch()
                    raise WriteConflictError(
                        f"cache for repo {repo_id} is at version {current}, expected {expected_version}"
                    )
                pipe.multi()
                pipe.delete(cache_key)
                for chunk in chunked(mapping):
                    pipe.hset(cache_key, mapping=dict(chunk))
                pipe.incr(version_key)
                results = await pipe.execute()
            except WatchError as exc:
                logger.info("Cache write raced for repo %s", repo_id)
                raise WriteConflictError(f"cache for repo {repo_id} changed during write") from exc
        return int(results[-1])

    async def close(self) -> None:
        await self.redis.aclose()


def create_redis_stores(redis_url: str) -> tuple[RedisRepoStore, RedisCacheStore]:
    client = redis.from_url(redis_url, decode_responses=True)
    return RedisRepoStore(client), RedisCacheStore(client)
