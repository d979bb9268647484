"""Sync management endpoints"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from issuemirror.api.deps import get_cache, get_sync_guard
from issuemirror.cache import CacheStore
from issuemirror.config import settings
from issuemirror.errors import RateLimitError, RepositoryNotFound, UpstreamError
from issuemirror.models.base import get_db
from issuemirror.models.sync_record import SyncStatus, SyncType
from issuemirror.services.sync_guard import SyncGuard
from issuemirror.services.sync_ledger import SyncLedger
from issuemirror.services.sync_service import SyncService

router = APIRouter(prefix="/api/sync", tags=["sync"])


class SyncRecordResponse(BaseModel):
    id: int
    owner: str
    repo: str
    status: SyncStatus
    sync_type: SyncType
    issues_synced: int
    error_message: Optional[str] = None
    last_sync_at: datetime
    created_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True


@router.post("/{owner}/{repo}")
def trigger_sync(
    owner: str,
    repo: str,
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
    guard: SyncGuard = Depends(get_sync_guard),
):
    """Manually trigger sync for a repository"""
    sync_service = SyncService(db, cache, guard)
    try:
        return sync_service.sync_repository(owner, repo)
    except RepositoryNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RateLimitError as e:
        raise HTTPException(
            status_code=429, detail=str(e), headers={"Retry-After": str(e.retry_after)}
        )
    except UpstreamError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        sync_service.close()


@router.get("/{owner}/{repo}/history", response_model=List[SyncRecordResponse])
def sync_history(owner: str, repo: str, limit: int = 0, db: Session = Depends(get_db)):
    """List retained sync records, newest first"""
    ledger = SyncLedger(db, retention=settings.sync_history_limit)
    return ledger.history(owner, repo, limit=limit or None)
