from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Literal

FileStatus = Literal["added", "modified", "removed", "renamed", "copied", "changed", "unchanged"]

# GitHub statuses for files that still exist after the commit.
EXISTING_FILE_STATUSES = frozenset({"added", "modified", "renamed", "copied", "changed"})


@dataclass(frozen=True)
class Repository:
    """Registered repository metadata, keyed by the GitHub repository id."""

    id: int
    name: str
    owner: str
    installation_id: int
    tracked_branch: str
    skip_paths: FrozenSet[str] = frozenset()
    fix_keywords: FrozenSet[str] = frozenset()

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def tracked_ref(self) -> str:
        return f"refs/heads/{self.tracked_branch}"

    def to_record(self) -> Dict[str, Any]:
        return {
            "key": str(self.id),
            "name": self.name,
            "owner": self.owner,
            "installation_id": self.installation_id,
            "tracked_branch": self.tracked_branch,
            "skip_paths": sorted(self.skip_paths),
            "fix_keywords": sorted(self.fix_keywords),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Repository":
        return cls(
            id=int(record["key"]),
            name=record["name"],
            owner=record["owner"],
            installation_id=int(record["installation_id"]),
            tracked_branch=record["tracked_branch"],
            skip_paths=frozenset(record.get("skip_paths") or ()),
            fix_keywords=frozenset(record.get("fix_keywords") or ()),
        )


@dataclass
class CacheEntry:
    """One bug-prone file prediction. `last_hit` is epoch milliseconds."""

    repo_id: int
    file: str
    hit_count: int = 1
    last_hit: int = 0

    def to_record(self) -> Dict[str, Any]:
        return {
            "repo": self.repo_id,
            "file": self.file,
            "number_of_hits": self.hit_count,
            "last_hit": self.last_hit,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "CacheEntry":
        return cls(
            repo_id=int(record["repo"]),
            file=record["file"],
            hit_count=int(record["number_of_hits"]),
            last_hit=int(record["last_hit"]),
        )


@dataclass(frozen=True)
class CacheSnapshot:
    """Entries read for one repository, in admission order, plus the store version they came from."""

    entries: List[CacheEntry]
    version: int = 0


@dataclass(frozen=True)
class ChangedFile:
    path: str
    status: FileStatus = "modified"


@dataclass
class Commit:
    """A commit as seen in a push payload or the commits API. Never persisted."""

    sha: str
    message: str
    added: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    is_merge: bool = False

    @classmethod
    def from_push_payload(cls, data: Dict[str, Any]) -> "Commit":
        return cls(
            sha=data.get("id") or data.get("sha") or "",
            message=data.get("message") or "",
            added=list(data.get("added") or []),
            modified=list(data.get("modified") or []),
            deleted=list(data.get("removed") or data.get("deleted") or []),
        )

    @classmethod
    def from_changed_files(cls, sha: str, message: str, files: List[ChangedFile]) -> "Commit":
        """Build a commit from the per-file statuses returned by the commit API."""
        commit = cls(sha=sha, message=message)
        for changed in files:
            if changed.status == "added":
                commit.added.append(changed.path)
            elif changed.status in EXISTING_FILE_STATUSES:
                commit.modified.append(changed.path)
            elif changed.status == "removed":
                commit.deleted.append(changed.path)
        return commit
