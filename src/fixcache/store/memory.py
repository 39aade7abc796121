from __future__ import annotations

import asyncio
from dataclasses import replace as clone
from typing import AsyncIterator, Dict, List, Optional, Sequence

from ..errors import WriteConflictError
from ..models import CacheEntry, Repository
from .base import CacheStore, RepoStore, check_batch


class MemoryRepoStore(RepoStore):
    """Process-local repository metadata."""

    def __init__(self) -> None:
        self._records: Dict[int, Repository] = {}
        self.put_calls = 0

    async def get(self, repo_id: int) -> Optional[Repository]:
        return self._records.get(int(repo_id))

    async def put_many(self, records: Sequence[Repository]) -> None:
        check_batch(records)
        self.put_calls += 1
        for record in records:
            self._records[record.id] = record


class MemoryCacheStore(CacheStore):
    """Process-local cache entries. Entry lists keep admission order."""

    def __init__(self) -> None:
        self._entries: Dict[int, List[CacheEntry]] = {}
        self._versions: Dict[int, int] = {}
        self._lock = asyncio.Lock()
        self.put_calls = 0

    async def fetch(self, repo_id: int, limit: int) -> AsyncIterator[CacheEntry]:
        for entry in list(self._entries.get(int(repo_id), []))[:limit]:
            yield clone(entry)

    async def version(self, repo_id: int) -> int:
        return self._versions.get(int(repo_id), 0)

    async def put_many(self, entries: Sequence[CacheEntry]) -> None:
        check_batch(entries)
        self.put_calls += 1
        async with self._lock:
            touched = set()
            for entry in entries:
                current = self._entries.setdefault(entry.repo_id, [])
                for index, existing in enumerate(current):
                    if existing.file == entry.file:
                        current[index] = clone(entry)
                        break
                else:
                    current.append(clone(entry))
                touched.add(entry.repo_id)
            for repo_id in touched:
                self._versions[repo_id] = self._versions.get(repo_id, 0) + 1

    async def replace(
        self, repo_id: int, entries: Sequence[CacheEntry], expected_version: int
    ) -> int:
        repo_id = int(repo_id)
        async with self._lock:
            current = self._versions.get(repo_id, 0)
            if current != expected_version:
                raise WriteConflictError(
                    f"cache for repo {repo_id} is at version {current}, expected {expected_version}"
                )
            self._entries[repo_id] = [clone(entry) for entry in entries]
            self._versions[repo_id] = current + 1
            return current + 1
