from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import replace as clone
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional

from .constants import Limits
from .errors import ConfigurationError, WriteConflictError
from .logging import FixCacheLogger
from .models import CacheEntry, CacheSnapshot
from .store.base import CacheStore

Clock = Callable[[], int]


def epoch_millis() -> int:
    return int(time.time() * 1000)


def admit_fresh(repo_id: int, files: Iterable[str], capacity: int, now: int) -> List[CacheEntry]:
    """Seed an empty cache: first `capacity` distinct files in encounter order, one hit each."""
    admitted: Dict[str, CacheEntry] = {}
    for path in files:
        if len(admitted) >= capacity:
            break
        if path not in admitted:
            admitted[path] = CacheEntry(repo_id=repo_id, file=path, hit_count=1, last_hit=now)
    return list(admitted.values())


def apply_hits(
    current: Iterable[CacheEntry],
    repo_id: int,
    files: Iterable[str],
    capacity: int,
    now: int,
) -> List[CacheEntry]:
    """
    Fold one batch of fix-touched files into an existing entry set.

    Present files are refreshed in place. An absent file first evicts the entry with the
    smallest last_hit while the set is full; `min` keeps the earliest entry on ties, so
    ties go to first-seen order. The returned list keeps admission order.
    """
    table: Dict[str, CacheEntry] = {entry.file: clone(entry) for entry in current}
    for path in files:
        entry = table.get(path)
        if entry is not None:
            entry.hit_count += 1
            entry.last_hit = now
            continue
        while table and len(table) >= capacity:
            victim = min(table.values(), key=lambda e: e.last_hit)
            del table[victim.file]
        table[path] = CacheEntry(repo_id=repo_id, file=path, hit_count=1, last_hit=now)
    return list(table.values())


class RepoLocks:
    """
    One asyncio.Lock per repository id, alive only while someone holds or waits on it.

    The table never outgrows the number of repositories with a write in flight.
    """

    def __init__(self) -> None:
        self._locks: Dict[int, asyncio.Lock] = {}
        self._users: Dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, repo_id: int) -> AsyncIterator[None]:
        lock = self._locks.get(repo_id)
        if lock is None:
            lock = self._locks[repo_id] = asyncio.Lock()
        self._users[repo_id] = self._users.get(repo_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[repo_id] -= 1
            if not self._users[repo_id]:
                del self._users[repo_id]
                del self._locks[repo_id]


class FixProneCache:
    """
    Bounded per-repository set of bug-prone files.

    Writes for one repository are serialized by an in-process lock, and every write is
    a versioned `replace` at the store so writers in other processes are detected too;
    on a conflict the whole read-compute-write cycle is retried from a fresh read.
    """

    def __init__(
        self,
        store: CacheStore,
        cache_size: int,
        clock: Clock = epoch_millis,
        locks: Optional[RepoLocks] = None,
        max_write_attempts: int = Limits.CACHE_WRITE_ATTEMPTS,
    ):
        if not isinstance(cache_size, int) or isinstance(cache_size, bool) or cache_size < 1:
            raise ConfigurationError(f"cache_size must be a positive integer, got {cache_size!r}")
        self.store = store
        self.cache_size = cache_size
        self._clock = clock
        self._locks = locks if locks is not None else RepoLocks()
        self._max_write_attempts = max(1, max_write_attempts)

    async def initialize(
        self,
        repo_id: int,
        files: Iterable[str],
        logger: Optional[FixCacheLogger] = None,
    ) -> List[CacheEntry]:
        """Seed the cache from pre-warm history, replacing whatever was stored before."""
        candidates = list(files)

        def compute(_: CacheSnapshot) -> List[CacheEntry]:
            return admit_fresh(repo_id, candidates, self.cache_size, self._clock())

        entries = await self._write(repo_id, compute, logger)
        if logger:
            logger.info(
                "cache_initialized",
                repo_id=repo_id,
                candidates=len(candidates),
                entries=len(entries),
            )
        return entries

    async def lookup(self, repo_id: int) -> Dict[str, int]:
        """Snapshot of file -> hit count. Unsynchronized; may trail an in-flight update."""
        return {entry.file: entry.hit_count async for entry in self.store.fetch(repo_id, self.cache_size)}

    async def update(
        self,
        repo_id: int,
        files: Iterable[str],
        logger: Optional[FixCacheLogger] = None,
    ) -> List[CacheEntry]:
        """Record one push worth of fix-touched files. Returns the committed entry set."""
        batch = list(files)
        if not batch:
            return []

        def compute(snapshot: CacheSnapshot) -> List[CacheEntry]:
            if not snapshot.entries:
                return admit_fresh(repo_id, batch, self.cache_size, self._clock())
            newest = max(entry.last_hit for entry in snapshot.entries)
            # last_hit never moves backwards even if the wall clock does
            now = max(self._clock(), newest + 1)
            return apply_hits(snapshot.entries, repo_id, batch, self.cache_size, now)

        entries = await self._write(repo_id, compute, logger)
        if logger:
            logger.info("cache_updated", repo_id=repo_id, files=len(batch), entries=len(entries))
        return entries

    async def _write(
        self,
        repo_id: int,
        compute: Callable[[CacheSnapshot], List[CacheEntry]],
        logger: Optional[FixCacheLogger],
    ) -> List[CacheEntry]:
        async with self._locks.hold(repo_id):
            attempt = 0
            while True:
                attempt += 1
                snapshot = await self.store.load(repo_id, self.cache_size)
                entries = compute(snapshot)
                try:
                    await self.store.replace(repo_id, entries, snapshot.version)
                    return entries
                except WriteConflictError as exc:
                    if attempt >= self._max_write_attempts:
                        raise
                    if logger:
                        logger.warning(
                            "cache_write_conflict",
                            repo_id=repo_id,
                            attempt=attempt,
                            error=str(exc),
                        )
