from __future__ import annotations

from enum import Enum


class EventKind(str, Enum):
    """Webhook event kinds the service understands (the `X-GitHub-Event` header)."""

    PING = "ping"
    INSTALLATION = "installation"
    INSTALLATION_REPOSITORIES = "installation_repositories"
    PUSH = "push"
    PULL_REQUEST = "pull_request"


class Limits:
    """Shared hard limits."""

    STORE_BATCH_SIZE = 25  # max items per physical put_many call
    GITHUB_PAGE_SIZE = 100
    CACHE_WRITE_ATTEMPTS = 5


DEFAULT_LABEL_NAME = "Fix Cache Warning :warning:"
DEFAULT_LABEL_COLOR = "e3ff00"

REGISTER_ACTIONS = frozenset({"created", "added"})
UNREGISTER_ACTIONS = frozenset({"deleted", "removed"})
