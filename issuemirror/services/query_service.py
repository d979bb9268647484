"""Read-through cached queries over mirrored data"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from issuemirror.cache import ISSUE, LABELS, CacheStore, cache_key, issues_key, view_key
from issuemirror.config import settings
from issuemirror.models import Issue, Label

logger = logging.getLogger(__name__)


def _filter_value(state: Optional[str], label: Optional[str]) -> str:
    parts = []
    if state:
        parts.append(f"state={state}")
    if label:
        parts.append(f"label={label}")
    return "&".join(parts)


def stored_view(db: Session, owner: str, repo: str) -> List[Dict[str, Any]]:
    """Every stored issue of a repository, most recently reconciled first"""
    rows = (
        db.query(Issue)
        .filter(Issue.owner == owner, Issue.repo == repo)
        .order_by(Issue.updated_at.desc(), Issue.issue_number.desc())
        .all()
    )
    return [row.to_dict() for row in rows]


class QueryService:
    """Serves issue and label listings from the cache, falling back to the store on a miss"""

    def __init__(self, db: Session, cache: CacheStore, *, ttl: Optional[float] = None):
        self.db = db
        self.cache = cache
        self.ttl = ttl if ttl is not None else settings.cache_ttl_seconds

    def list_issues(
        self,
        owner: str,
        repo: str,
        page: int = 1,
        per_page: Optional[int] = None,
        state: Optional[str] = None,
        label: Optional[str] = None,
    ) -> Dict[str, Any]:
        """One page of issues, newest upstream issues first"""
        page = max(1, page)
        per_page = per_page or settings.issues_per_page
        key = issues_key(owner, repo, page, per_page, _filter_value(state, label))

        cached = self.cache.get(key)
        if cached is not None:
            return cached

        query = self.db.query(Issue).filter(Issue.owner == owner, Issue.repo == repo)
        if state:
            query = query.filter(Issue.state == state)
        rows = query.order_by(Issue.github_created_at.desc(), Issue.issue_number.desc()).all()
        if label:
            # Label lists are JSON; membership is checked here to stay dialect-neutral.
            rows = [row for row in rows if label in (row.labels or [])]

        start = (page - 1) * per_page
        payload = {"issues": [row.to_dict() for row in rows[start:start + per_page]]}
        self.cache.set(key, payload, ttl=self.ttl)
        return payload

    def recent_issues(self, owner: str, repo: str) -> Dict[str, Any]:
        """The issue view kept by syncs; rebuilt from the store when not cached"""
        key = view_key(owner, repo)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        payload = {"issues": stored_view(self.db, owner, repo)}
        self.cache.set(key, payload, ttl=self.ttl)
        return payload

    def refresh(self, owner: str, repo: str, per_page: Optional[int] = None) -> Dict[str, Any]:
        """Drop every cached entry of the repository and re-read the first page"""
        removed = self.cache.invalidate_tenant(owner, repo)
        logger.info(f"Refreshing cached views for {owner}/{repo} ({removed} entries dropped)")
        return self.list_issues(owner, repo, page=1, per_page=per_page)

    def get_issue(self, owner: str, repo: str, number: int) -> Optional[Dict[str, Any]]:
        key = cache_key(owner, repo, ISSUE, number)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        row = (
            self.db.query(Issue)
            .filter(Issue.owner == owner, Issue.repo == repo, Issue.issue_number == number)
            .first()
        )
        if row is None:
            return None
        payload = row.to_dict()
        self.cache.set(key, payload, ttl=self.ttl)
        return payload

    def list_labels(self, owner: str, repo: str) -> Dict[str, Any]:
        key = cache_key(owner, repo, LABELS)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        rows = (
            self.db.query(Label)
            .filter(Label.owner == owner, Label.repo == repo)
            .order_by(Label.name)
            .all()
        )
        payload = {"labels": [row.to_dict() for row in rows]}
        self.cache.set(key, payload, ttl=self.ttl)
        return payload
