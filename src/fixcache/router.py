from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from .cache import FixProneCache
from .comment import render_hits_comment
from .config import FixCacheConfig
from .constants import REGISTER_ACTIONS, UNREGISTER_ACTIONS, EventKind
from .errors import NotFoundError, UnsupportedEventError
from .extractor import aggregate_files
from .github import GitHubClientFactory
from .history import scan_history
from .logging import FixCacheLogger
from .models import Commit, Repository
from .store import CacheStore, RepoStore, put_items

OutcomeStatus = Literal["processed", "ignored"]


@dataclass(frozen=True)
class Services:
    """Process-wide collaborators, built once at startup."""

    config: FixCacheConfig
    repo_store: RepoStore
    cache_store: CacheStore
    cache: FixProneCache
    github: GitHubClientFactory


@dataclass(frozen=True)
class EventContext:
    """Everything one event handler may touch. Built per delivery, never shared."""

    config: FixCacheConfig
    repo_store: RepoStore
    cache: FixProneCache
    github: GitHubClientFactory
    logger: FixCacheLogger

    @classmethod
    def for_delivery(cls, services: Services, logger: FixCacheLogger) -> "EventContext":
        return cls(
            config=services.config,
            repo_store=services.repo_store,
            cache=services.cache,
            github=services.github,
            logger=logger,
        )


@dataclass
class EventOutcome:
    kind: EventKind
    status: OutcomeStatus
    reason: str
    details: Dict[str, Any] = field(default_factory=dict)


def parse_event_kind(header: Optional[str]) -> EventKind:
    try:
        return EventKind((header or "").strip().lower())
    except ValueError:
        raise UnsupportedEventError(f"unsupported event kind: {header!r}") from None


async def route_event(ctx: EventContext, kind: EventKind, payload: Dict[str, Any]) -> EventOutcome:
    if kind is EventKind.PING:
        return EventOutcome(kind, "ignored", "pong")
    if kind is EventKind.INSTALLATION:
        return await handle_installation(ctx, payload)
    if kind is EventKind.INSTALLATION_REPOSITORIES:
        return await handle_installation_repositories(ctx, payload)
    if kind is EventKind.PUSH:
        return await handle_push(ctx, payload)
    if kind is EventKind.PULL_REQUEST:
        return await handle_pull_request(ctx, payload)
    raise UnsupportedEventError(f"no handler for event kind {kind!r}")


async def require_repository(ctx: EventContext, repo_id: Any) -> Repository:
    if repo_id is None:
        raise NotFoundError("event payload has no repository id")
    repo = await ctx.repo_store.get(int(repo_id))
    if repo is None:
        raise NotFoundError(f"repository {repo_id} is not registered")
    return repo


def repository_from_payload(
    item: Dict[str, Any],
    installation_id: int,
    config: FixCacheConfig,
    account_login: str = "",
) -> Repository:
    full_name = item.get("full_name") or ""
    owner = full_name.split("/", 1)[0] if "/" in full_name else account_login
    return Repository(
        id=int(item["id"]),
        name=item.get("name") or full_name.split("/", 1)[-1],
        owner=owner,
        installation_id=installation_id,
        tracked_branch=config.tracked_branch,
        skip_paths=config.skip_paths,
        fix_keywords=config.fix_keywords,
    )


async def register_repositories(
    ctx: EventContext,
    installation: Dict[str, Any],
    items: List[Dict[str, Any]],
    kind: EventKind,
) -> EventOutcome:
    installation_id = int(installation["id"])
    account_login = (installation.get("account") or {}).get("login", "")
    records = [repository_from_payload(item, installation_id, ctx.config, account_login) for item in items]
    if not records:
        return EventOutcome(kind, "ignored", "no_repositories")

    await put_items(ctx.repo_store.put_many, records)
    ctx.logger.info("repositories_registered", installation_id=installation_id, count=len(records))

    scanned: Dict[str, int] = {}
    async with ctx.github.for_installation(installation_id) as gh:
        for repo in records:
            with ctx.logger.stage("register_repository", repo=repo.full_name):
                await gh.create_label(repo.owner, repo.name, ctx.config.label_name, ctx.config.label_color)
                result = await scan_history(
                    gh, repo, ctx.cache, ctx.config.history_size, logger=ctx.logger
                )
                scanned[repo.full_name] = len(result.entries)

    return EventOutcome(kind, "processed", "registered", {"repositories": scanned})


async def handle_installation(ctx: EventContext, payload: Dict[str, Any]) -> EventOutcome:
    action = payload.get("action")
    if action in UNREGISTER_ACTIONS:
        # stored metadata and cache entries are retained
        ctx.logger.info("installation_removed", action=action)
        return EventOutcome(EventKind.INSTALLATION, "ignored", f"action_{action}")
    if action not in REGISTER_ACTIONS:
        return EventOutcome(EventKind.INSTALLATION, "ignored", f"action_{action}")
    items = payload.get("repositories") or payload.get("repositories_added") or []
    return await register_repositories(ctx, payload.get("installation") or {}, items, EventKind.INSTALLATION)


async def handle_installation_repositories(ctx: EventContext, payload: Dict[str, Any]) -> EventOutcome:
    action = payload.get("action")
    kind = EventKind.INSTALLATION_REPOSITORIES
    if action in UNREGISTER_ACTIONS:
        ctx.logger.info("repositories_removed", count=len(payload.get("repositories_removed") or []))
        return EventOutcome(kind, "ignored", f"action_{action}")
    if action not in REGISTER_ACTIONS:
        return EventOutcome(kind, "ignored", f"action_{action}")
    items = payload.get("repositories_added") or payload.get("repositories") or []
    return await register_repositories(ctx, payload.get("installation") or {}, items, kind)


async def handle_push(ctx: EventContext, payload: Dict[str, Any]) -> EventOutcome:
    repo = await require_repository(ctx, (payload.get("repository") or {}).get("id"))
    ref = payload.get("ref")
    if ref != repo.tracked_ref:
        return EventOutcome(EventKind.PUSH, "ignored", "untracked_ref", {"ref": ref})

    commits = [Commit.from_push_payload(item) for item in payload.get("commits") or []]
    files = aggregate_files(commits, repo.fix_keywords, repo.skip_paths)

    entries = await ctx.cache.update(repo.id, files, logger=ctx.logger)
    return EventOutcome(
        EventKind.PUSH,
        "processed",
        "cache_updated" if files else "no_fix_files",
        {"commits": len(commits), "files": len(files), "entries": len(entries)},
    )


async def handle_pull_request(ctx: EventContext, payload: Dict[str, Any]) -> EventOutcome:
    pull_request = payload.get("pull_request") or {}
    action = payload.get("action")
    base_ref = (pull_request.get("base") or {}).get("ref")
    if action != "opened":
        return EventOutcome(EventKind.PULL_REQUEST, "ignored", f"action_{action}")

    repo = await require_repository(ctx, (payload.get("repository") or {}).get("id"))
    if base_ref != repo.tracked_branch:
        return EventOutcome(EventKind.PULL_REQUEST, "ignored", "untracked_base", {"base": base_ref})

    number = int(payload.get("number") or pull_request["number"])
    installation_id = int((payload.get("installation") or {}).get("id") or repo.installation_id)

    async with ctx.github.for_installation(installation_id) as gh:
        changed = await gh.list_pull_request_files(repo.owner, repo.name, number)
        cached = await ctx.cache.lookup(repo.id)
        hits = [(path, cached[path]) for path in changed if path in cached]
        if not hits:
            return EventOutcome(
                EventKind.PULL_REQUEST, "processed", "no_hits", {"changed_files": len(changed)}
            )

        await gh.create_comment(repo.owner, repo.name, number, render_hits_comment(hits))
        await gh.add_labels(repo.owner, repo.name, number, [ctx.config.label_name])

    ctx.logger.info("pull_request_annotated", repo=repo.full_name, number=number, hits=len(hits))
    return EventOutcome(
        EventKind.PULL_REQUEST,
        "processed",
        "annotated",
        {"changed_files": len(changed), "hits": dict(hits)},
    )
