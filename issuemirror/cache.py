"""In-process TTL cache with tenant-scoped invalidation.

Keys are composed as ``owner:repo:kind:params...`` so that every entry
belonging to one repository shares the ``owner:repo:`` prefix and can be
dropped in one call after a write.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

ISSUES = "issues"
ISSUES_VIEW = "issues_view"
ISSUE = "issue"
LABELS = "labels"


def tenant_prefix(owner: str, repo: str) -> str:
    return f"{owner}:{repo}:"


def cache_key(owner: str, repo: str, kind: str, *params: Any) -> str:
    """Build a cache key for a resource kind and its query parameters."""
    parts = [str(p) if p is not None else "" for p in params]
    return tenant_prefix(owner, repo) + ":".join([kind, *parts])


def issues_key(
    owner: str, repo: str, page: int = 1, per_page: Optional[int] = None, filter_value: str = ""
) -> str:
    """Key of one issue-list page for a page size and filter."""
    return cache_key(owner, repo, ISSUES, page, per_page, filter_value)


def view_key(owner: str, repo: str) -> str:
    """Key of the issue view maintained by syncs (merged, unpaged)."""
    return cache_key(owner, repo, ISSUES_VIEW)


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class CacheStore:
    """Thread-safe TTL key-value store.

    A single instance is created at process start and handed to the services
    that read or invalidate it.
    """

    def __init__(self, default_ttl: float = 300, *, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def remove_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``; returns how many were dropped."""
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def invalidate_tenant(self, owner: str, repo: str) -> int:
        removed = self.remove_prefix(tenant_prefix(owner, repo))
        if removed:
            logger.debug(f"Invalidated {removed} cache entries for {owner}/{repo}")
        return removed

    def keys(self) -> List[str]:
        with self._lock:
            now = self._clock()
            return [k for k, e in self._entries.items() if e.expires_at > now]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
