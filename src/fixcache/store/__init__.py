"""Persistence collaborators for repository metadata and cache entries."""

from __future__ import annotations

from typing import Tuple

from ..config import FixCacheConfig
from .base import CacheStore, RepoStore, check_batch, chunked, put_items
from .memory import MemoryCacheStore, MemoryRepoStore


def create_stores(config: FixCacheConfig) -> Tuple[RepoStore, CacheStore]:
    """Build the configured backend pair."""
    if config.store_backend == "redis":
        from .redis_store import create_redis_stores

        return create_redis_stores(config.redis_url)
    return MemoryRepoStore(), MemoryCacheStore()


__all__ = [
    "CacheStore",
    "RepoStore",
    "MemoryCacheStore",
    "MemoryRepoStore",
    "check_batch",
    "chunked",
    "create_stores",
    "put_items",
]
