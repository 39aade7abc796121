from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from fixcache.cache import FixProneCache
from fixcache.config import FixCacheConfig
from fixcache.logging import FixCacheLogger
from fixcache.models import ChangedFile
from fixcache.router import EventContext
from fixcache.store import MemoryCacheStore, MemoryRepoStore


@pytest.fixture(params=["asyncio"])
def anyio_backend(request):
    """Restrict anyio tests to asyncio only (trio is not installed)."""
    return request.param


class FakeClock:
    """Millisecond clock that advances by `step` on every read."""

    def __init__(self, start: int = 1_000, step: int = 1) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> int:
        value = self.now
        self.now += self.step
        return value


class DummyGitHub:
    """In-memory stand-in for GitHubClient that records every write."""

    def __init__(
        self,
        commits: Optional[List[Dict[str, Any]]] = None,
        commit_files: Optional[Dict[str, List[ChangedFile]]] = None,
        pr_files: Optional[List[str]] = None,
        fail_on: Optional[str] = None,
    ) -> None:
        self.commits = commits or []
        self.commit_files = commit_files or {}
        self.pr_files = pr_files or []
        self.fail_on = fail_on
        self.since = None
        self.labels_created: List[Tuple[str, str, str]] = []
        self.labels_added: List[Tuple[int, List[str]]] = []
        self.comments: List[Tuple[int, str]] = []
        self.commit_file_requests: List[str] = []

    def _maybe_fail(self, name: str) -> None:
        if self.fail_on == name:
            from fixcache.errors import TransientAPIError

            raise TransientAPIError(f"{name} failed", status_code=502)

    async def list_commits(self, owner, repo, branch, since):
        self.since = since
        self._maybe_fail("list_commits")
        for commit in self.commits:
            yield commit

    async def get_commit_files(self, owner, repo, sha):
        self.commit_file_requests.append(sha)
        self._maybe_fail("get_commit_files")
        return self.commit_files.get(sha, [])

    async def list_pull_request_files(self, owner, repo, pr_number):
        self._maybe_fail("list_pull_request_files")
        return list(self.pr_files)

    async def create_label(self, owner, repo, name, color):
        self.labels_created.append((f"{owner}/{repo}", name, color))
        return True

    async def add_labels(self, owner, repo, issue_number, labels):
        self.labels_added.append((issue_number, labels))

    async def create_comment(self, owner, repo, issue_number, body):
        self.comments.append((issue_number, body))
        return f"https://github.com/{owner}/{repo}/issues/{issue_number}#comment"


class DummyGitHubFactory:
    def __init__(self, client: DummyGitHub) -> None:
        self.client = client
        self.installations: List[int] = []

    def for_installation(self, installation_id: int):
        factory = self

        class _Scope:
            async def __aenter__(self_inner):
                factory.installations.append(installation_id)
                return factory.client

            async def __aexit__(self_inner, exc_type, exc, tb):
                return False

        return _Scope()


def make_commit(sha: str, message: str, parents: int = 1) -> Dict[str, Any]:
    return {
        "sha": sha,
        "commit": {"message": message},
        "parents": [{"sha": f"{sha}-p{i}"} for i in range(parents)],
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> FixCacheConfig:
    return FixCacheConfig(
        cache_size=3,
        history_size=30,
        tracked_branch="main",
        fix_keywords={"fix", "bug"},
        skip_paths={"vendor/"},
    )


@pytest.fixture
def repo_store() -> MemoryRepoStore:
    return MemoryRepoStore()


@pytest.fixture
def cache_store() -> MemoryCacheStore:
    return MemoryCacheStore()


@pytest.fixture
def cache(cache_store: MemoryCacheStore, config: FixCacheConfig, clock: FakeClock) -> FixProneCache:
    return FixProneCache(cache_store, config.cache_size, clock=clock)


@pytest.fixture
def github() -> DummyGitHub:
    return DummyGitHub()


@pytest.fixture
def ctx(config, repo_store, cache, github) -> EventContext:
    return EventContext(
        config=config,
        repo_store=repo_store,
        cache=cache,
        github=DummyGitHubFactory(github),
        logger=FixCacheLogger("test-delivery"),
    )
