"""Read endpoints for mirrored issues and labels"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from issuemirror.api.deps import get_cache
from issuemirror.cache import CacheStore
from issuemirror.models.base import get_db
from issuemirror.services.query_service import QueryService

router = APIRouter(prefix="/api/repos", tags=["issues"])


@router.get("/{owner}/{repo}/issues")
def list_issues(
    owner: str,
    repo: str,
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1, le=100),
    state: Optional[str] = None,
    label: Optional[str] = None,
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
):
    """List mirrored issues (cached)"""
    return QueryService(db, cache).list_issues(
        owner, repo, page=page, per_page=per_page, state=state, label=label
    )


@router.get("/{owner}/{repo}/recent-issues")
def recent_issues(
    owner: str,
    repo: str,
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
):
    """Issue view maintained by syncs (cached)"""
    return QueryService(db, cache).recent_issues(owner, repo)


@router.post("/{owner}/{repo}/refresh")
def refresh_issues(
    owner: str,
    repo: str,
    per_page: Optional[int] = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
):
    """Drop the repository's cached views and return a fresh first page"""
    return QueryService(db, cache).refresh(owner, repo, per_page=per_page)


@router.get("/{owner}/{repo}/issues/{number}")
def get_issue(
    owner: str,
    repo: str,
    number: int,
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
):
    """Get a single mirrored issue (cached)"""
    issue = QueryService(db, cache).get_issue(owner, repo, number)
    if issue is None:
        raise HTTPException(status_code=404, detail="Issue not found")
    return issue


@router.get("/{owner}/{repo}/labels")
def list_labels(
    owner: str,
    repo: str,
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
):
    """List mirrored labels (cached)"""
    return QueryService(db, cache).list_labels(owner, repo)
