"""Tracked repository management endpoints"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from issuemirror.api.deps import get_scheduler
from issuemirror.config import settings
from issuemirror.models import Repository
from issuemirror.models.base import get_db

router = APIRouter(prefix="/api/repositories", tags=["repositories"])


class RepositoryCreate(BaseModel):
    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)
    # Optional: if omitted, the globally configured GITHUB_TOKEN is used
    access_token: Optional[str] = None
    issues_per_page: int = Field(default=settings.issues_per_page, ge=1, le=100)
    sync_enabled: bool = True
    sync_interval_minutes: int = Field(default=settings.default_sync_interval_minutes, ge=1)


class RepositoryResponse(BaseModel):
    id: int
    owner: str
    repo: str
    issues_per_page: int
    sync_enabled: bool
    sync_interval_minutes: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


def _get_or_404(db: Session, repository_id: int) -> Repository:
    repository = db.query(Repository).filter(Repository.id == repository_id).first()
    if not repository:
        raise HTTPException(status_code=404, detail="Repository not found")
    return repository


def _apply_schedule(scheduler, repository: Repository):
    if scheduler is None:
        return
    if repository.sync_enabled:
        scheduler.schedule(repository.id, repository.sync_interval_minutes)
    else:
        scheduler.unschedule(repository.id)


@router.get("/", response_model=List[RepositoryResponse])
def list_repositories(db: Session = Depends(get_db)):
    """List all tracked repositories"""
    return db.query(Repository).all()


@router.post("/", response_model=RepositoryResponse)
def create_repository(
    payload: RepositoryCreate,
    db: Session = Depends(get_db),
    scheduler=Depends(get_scheduler),
):
    """Register a repository for mirroring"""
    owner, repo = payload.owner.strip(), payload.repo.strip()
    existing = (
        db.query(Repository).filter(Repository.owner == owner, Repository.repo == repo).first()
    )
    if existing:
        raise HTTPException(status_code=400, detail="Repository already registered")

    data = payload.model_dump()
    data.update(owner=owner, repo=repo)
    repository = Repository(**data)
    db.add(repository)
    db.commit()
    db.refresh(repository)

    # Schedule immediately if enabled
    _apply_schedule(scheduler, repository)
    return repository


@router.get("/{repository_id}", response_model=RepositoryResponse)
def get_repository(repository_id: int, db: Session = Depends(get_db)):
    """Get a specific tracked repository"""
    return _get_or_404(db, repository_id)


@router.put("/{repository_id}", response_model=RepositoryResponse)
def update_repository(
    repository_id: int,
    payload: RepositoryCreate,
    db: Session = Depends(get_db),
    scheduler=Depends(get_scheduler),
):
    """Update a tracked repository"""
    repository = _get_or_404(db, repository_id)

    owner, repo = payload.owner.strip(), payload.repo.strip()
    clash = (
        db.query(Repository)
        .filter(Repository.owner == owner, Repository.repo == repo, Repository.id != repository_id)
        .first()
    )
    if clash:
        raise HTTPException(status_code=400, detail="Repository already registered")

    for key, value in payload.model_dump().items():
        if key == "access_token" and value is None:
            # Keep the stored token unless a new one is provided.
            continue
        setattr(repository, key, value)
    repository.owner, repository.repo = owner, repo

    db.commit()
    db.refresh(repository)

    # Reconcile scheduler with latest DB state
    _apply_schedule(scheduler, repository)
    return repository


@router.delete("/{repository_id}")
def delete_repository(
    repository_id: int,
    db: Session = Depends(get_db),
    scheduler=Depends(get_scheduler),
):
    """Stop tracking a repository (mirrored rows are kept)"""
    repository = _get_or_404(db, repository_id)

    if scheduler is not None:
        scheduler.unschedule(repository_id)
    db.delete(repository)
    db.commit()
    return {"message": "Repository deleted successfully"}
