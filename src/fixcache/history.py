from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .cache import FixProneCache
from .classifier import is_fix_message
from .extractor import extract_files
from .github import GitHubClient
from .logging import FixCacheLogger
from .models import CacheEntry, Commit, Repository


@dataclass
class HistoryScanResult:
    cutoff: datetime
    commits_seen: int = 0
    fix_commits: int = 0
    merges_skipped: int = 0
    files: List[str] = field(default_factory=list)
    entries: List[CacheEntry] = field(default_factory=list)


def history_cutoff(history_size: int, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=history_size)


def _is_merge(item: Dict[str, Any]) -> bool:
    return len(item.get("parents") or []) > 1


def _message(item: Dict[str, Any]) -> str:
    return ((item.get("commit") or {}).get("message")) or item.get("message") or ""


async def scan_history(
    github: GitHubClient,
    repo: Repository,
    cache: FixProneCache,
    history_size: int,
    now: Optional[datetime] = None,
    logger: Optional[FixCacheLogger] = None,
) -> HistoryScanResult:
    """
    Pre-warm the cache of a newly registered repository.

    Walks the tracked branch back to `history_size` days, keeps non-merge fix commits,
    collects their surviving files (with repeats across commits) and seeds the cache
    once at the end. Any collaborator failure propagates and nothing is written.
    """
    result = HistoryScanResult(cutoff=history_cutoff(history_size, now))

    async for item in github.list_commits(repo.owner, repo.name, repo.tracked_branch, result.cutoff):
        result.commits_seen += 1
        if _is_merge(item):
            result.merges_skipped += 1
            continue
        message = _message(item)
        if not is_fix_message(message, repo.fix_keywords):
            continue

        result.fix_commits += 1
        sha = item.get("sha", "")
        changed = await github.get_commit_files(repo.owner, repo.name, sha)
        commit = Commit.from_changed_files(sha, message, changed)
        result.files.extend(extract_files(commit, repo.skip_paths))

    result.entries = await cache.initialize(repo.id, result.files, logger=logger)
    if logger:
        logger.info(
            "history_scanned",
            repo=repo.full_name,
            cutoff=result.cutoff.isoformat(),
            commits_seen=result.commits_seen,
            fix_commits=result.fix_commits,
            merges_skipped=result.merges_skipped,
            files=len(result.files),
        )
    return result
