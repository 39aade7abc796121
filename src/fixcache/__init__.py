"""
Fix Cache
=========

A GitHub App that remembers which files bug-fix commits keep touching and warns on
pull requests that change them. Fix commits are found by keyword, their files go
into a bounded per-repository cache with least-recently-hit eviction, and new
installations are pre-warmed from recent history.
"""

__version__ = "0.1.0"

from .cache import FixProneCache, admit_fresh, apply_hits
from .classifier import is_fix_message
from .config import FixCacheConfig, load_config
from .errors import (
    BatchLimitError,
    ConfigurationError,
    FixCacheError,
    GitHubAPIError,
    NotFoundError,
    TransientAPIError,
    UnsupportedEventError,
    WriteConflictError,
)
from .extractor import aggregate_files, extract_files
from .history import scan_history
from .models import CacheEntry, Commit, Repository
from .router import EventContext, Services, route_event

__all__ = [
    # Core
    "FixProneCache",
    "admit_fresh",
    "apply_hits",
    "is_fix_message",
    "extract_files",
    "aggregate_files",
    "scan_history",
    # Events
    "EventContext",
    "Services",
    "route_event",
    # Models
    "CacheEntry",
    "Commit",
    "Repository",
    # Config
    "FixCacheConfig",
    "load_config",
    # Errors
    "FixCacheError",
    "ConfigurationError",
    "NotFoundError",
    "GitHubAPIError",
    "TransientAPIError",
    "BatchLimitError",
    "WriteConflictError",
    "UnsupportedEventError",
]
