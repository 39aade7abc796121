from __future__ import annotations

from typing import Dict, Iterable, List

from .classifier import is_fix_message
from .models import Commit


def is_skipped(path: str, skip_paths: Iterable[str]) -> bool:
    return any(fragment and fragment in path for fragment in skip_paths)


def extract_files(commit: Commit, skip_paths: Iterable[str]) -> List[str]:
    """
    Paths a commit touched that still exist, minus anything under a skip path.

    Modified paths come before added ones; duplicates are dropped. Callers that only
    need membership can treat the result as a set.
    """
    skip = tuple(skip_paths)
    seen: Dict[str, None] = {}
    for path in [*commit.modified, *commit.added]:
        if not path or path in seen or is_skipped(path, skip):
            continue
        seen[path] = None
    return list(seen)


def aggregate_files(
    commits: Iterable[Commit],
    keywords: Iterable[str],
    skip_paths: Iterable[str],
) -> List[str]:
    """Union of extracted files across the fix commits of one push, in first-seen order."""
    keywords = tuple(keywords)
    skip = tuple(skip_paths)
    seen: Dict[str, None] = {}
    for commit in commits:
        if not is_fix_message(commit.message, keywords):
            continue
        for path in extract_files(commit, skip):
            seen.setdefault(path, None)
    return list(seen)
