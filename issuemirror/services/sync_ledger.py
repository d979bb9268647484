"""Sync history ledger"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from issuemirror.errors import StoreError
from issuemirror.models import SyncRecord
from issuemirror.models.base import utcnow
from issuemirror.models.sync_record import SyncStatus, SyncType

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = 20

# Record types that move the incremental cursor. Webhook deliveries only cover
# the single issue or label they carried.
CURSOR_SYNC_TYPES = (SyncType.FULL, SyncType.INCREMENTAL)


class SyncLedger:
    """Append-only audit of sync attempts, capped per repository"""

    def __init__(
        self,
        db: Session,
        *,
        retention: int = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.retention = retention
        self.clock = clock

    def _tenant_query(self, owner: str, repo: str):
        return (
            self.db.query(SyncRecord)
            .filter(SyncRecord.owner == owner, SyncRecord.repo == repo)
            .order_by(SyncRecord.created_at.desc(), SyncRecord.id.desc())
        )

    def record(
        self,
        owner: str,
        repo: str,
        status: SyncStatus,
        sync_type: SyncType,
        issues_synced: int = 0,
        error_message: Optional[str] = None,
        last_sync_at: Optional[datetime] = None,
    ) -> SyncRecord:
        """Append a record and prune the repository's history to the newest ``retention`` rows.

        The insert and the prune share one transaction, and the rows to drop are
        picked from a single ordered read of the repository's history.
        """
        now = self.clock()
        record = SyncRecord(
            owner=owner,
            repo=repo,
            status=status,
            sync_type=sync_type,
            issues_synced=issues_synced,
            error_message=error_message,
            last_sync_at=last_sync_at or now,
            created_at=now,
        )
        try:
            self.db.add(record)
            self.db.flush()

            ids = [
                row.id
                for row in self.db.query(SyncRecord.id)
                .filter(SyncRecord.owner == owner, SyncRecord.repo == repo)
                .order_by(SyncRecord.created_at.desc(), SyncRecord.id.desc())
                .all()
            ]
            excess = ids[self.retention:]
            if excess:
                self.db.query(SyncRecord).filter(SyncRecord.id.in_(excess)).delete(
                    synchronize_session=False
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to record sync history for {owner}/{repo}: {e}") from e

        if excess:
            logger.debug(f"Pruned {len(excess)} old sync record(s) for {owner}/{repo}")
        return record

    def record_failure(
        self,
        owner: str,
        repo: str,
        sync_type: SyncType,
        error: BaseException,
    ) -> Optional[SyncRecord]:
        """Best-effort failed record; a ledger error is logged and never masks ``error``."""
        try:
            return self.record(
                owner,
                repo,
                SyncStatus.FAILED,
                sync_type,
                issues_synced=0,
                error_message=str(error) or error.__class__.__name__,
            )
        except Exception as e:
            logger.error(f"Failed to record sync failure for {owner}/{repo}: {e}")
            return None

    def last_successful_sync(self, owner: str, repo: str) -> Optional[SyncRecord]:
        """Most recent successful full or incremental sync, if any"""
        try:
            return (
                self._tenant_query(owner, repo)
                .filter(
                    SyncRecord.status == SyncStatus.SUCCESS,
                    SyncRecord.sync_type.in_(CURSOR_SYNC_TYPES),
                )
                .first()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to read sync history for {owner}/{repo}: {e}") from e

    def history(self, owner: str, repo: str, limit: Optional[int] = None) -> List[SyncRecord]:
        query = self._tenant_query(owner, repo)
        if limit:
            query = query.limit(limit)
        return query.all()
