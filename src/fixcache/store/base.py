from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Sequence, TypeVar

from ..constants import Limits
from ..errors import BatchLimitError
from ..models import CacheEntry, CacheSnapshot, Repository

T = TypeVar("T")


def check_batch(items: Sequence[object], limit: int = Limits.STORE_BATCH_SIZE) -> None:
    """Reject oversized physical batches instead of truncating them."""
    if len(items) > limit:
        raise BatchLimitError(
            f"put_many accepts at most {limit} items per call, got {len(items)}; use put_items"
        )


def chunked(items: Sequence[T], size: int = Limits.STORE_BATCH_SIZE) -> List[Sequence[T]]:
    return [items[start:start + size] for start in range(0, len(items), size)]


async def put_items(
    put_many: Callable[[Sequence[T]], Awaitable[None]],
    items: Sequence[T],
    size: int = Limits.STORE_BATCH_SIZE,
) -> None:
    """
    Write any number of items through a batch-limited put_many.

    Chunks are written in order and the first failure propagates: chunks before it are
    already committed, so callers must treat a raised error as a partial write.
    """
    for chunk in chunked(list(items), size):
        await put_many(chunk)


class RepoStore(ABC):
    """Repository metadata keyed by GitHub repository id."""

    @abstractmethod
    async def get(self, repo_id: int) -> Optional[Repository]:
        """Return the stored repository or None."""

    @abstractmethod
    async def put_many(self, records: Sequence[Repository]) -> None:
        """Upsert up to Limits.STORE_BATCH_SIZE records in one call."""

    async def close(self) -> None:
        return None


class CacheStore(ABC):
    """Per-repository cache entries keyed by (repo, file)."""

    @abstractmethod
    def fetch(self, repo_id: int, limit: int) -> AsyncIterator[CacheEntry]:
        """Lazily yield at most `limit` entries for the repository in admission order."""

    @abstractmethod
    async def version(self, repo_id: int) -> int:
        """Monotonic version of the repository's entry set (0 when never written)."""

    @abstractmethod
    async def put_many(self, entries: Sequence[CacheEntry]) -> None:
        """Upsert up to Limits.STORE_BATCH_SIZE entries in one call."""

    @abstractmethod
    async def replace(
        self, repo_id: int, entries: Sequence[CacheEntry], expected_version: int
    ) -> int:
        """
        Atomically install `entries` as the repository's complete entry set.

        Raises WriteConflictError when the stored version is no longer
        `expected_version`. Returns the new version.
        """

    async def load(self, repo_id: int, limit: int) -> CacheSnapshot:
        version = await self.version(repo_id)
        entries = [entry async for entry in self.fetch(repo_id, limit)]
        return CacheSnapshot(entries=entries, version=version)

    async def close(self) -> None:
        return None
