"""Per-repository sync cooldown"""

import logging
import os
import socket
import threading
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from issuemirror.errors import RateLimitError, StoreError
from issuemirror.models import SyncLease

logger = logging.getLogger(__name__)


class SyncGuard:
    """Single-flight guard for repository syncs.

    The authoritative state is a ``sync_leases`` row per repository, taken
    with a conditional write so that several processes agree on who may sync.
    The in-process map only short-circuits the database round trip for
    repositories this process already knows to be cooling down.

    One instance is shared by everything in the process that triggers syncs.
    """

    def __init__(self, cooldown_seconds: float = 60, *, holder: Optional[str] = None):
        self.cooldown = timedelta(seconds=cooldown_seconds)
        self.holder = holder or f"{socket.gethostname()}:{os.getpid()}"
        self._local: Dict[Tuple[str, str], datetime] = {}
        self._lock = threading.Lock()

    def acquire(self, db: Session, owner: str, repo: str, now: datetime) -> datetime:
        """Take the lease for a sync starting at ``now``; returns its expiry.

        Raises RateLimitError (with the remaining wait) while a previous
        attempt's cooldown is still running, whatever that attempt's outcome.
        """
        key = (owner, repo)
        with self._lock:
            expires_at = self._local.get(key)
            if expires_at is not None and now < expires_at:
                raise RateLimitError((expires_at - now).total_seconds())
            self._local[key] = now + self.cooldown

        try:
            return self._acquire_lease(db, owner, repo, now)
        except RateLimitError as e:
            with self._lock:
                self._local[key] = now + timedelta(seconds=e.retry_after)
            raise

    def _acquire_lease(self, db: Session, owner: str, repo: str, now: datetime) -> datetime:
        expires_at = now + self.cooldown
        try:
            result = db.execute(
                update(SyncLease)
                .where(
                    SyncLease.owner == owner,
                    SyncLease.repo == repo,
                    SyncLease.expires_at <= now,
                )
                .values(started_at=now, expires_at=expires_at, holder=self.holder)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.add(
                    SyncLease(
                        owner=owner,
                        repo=repo,
                        started_at=now,
                        expires_at=expires_at,
                        holder=self.holder,
                    )
                )
            db.commit()
        except IntegrityError:
            # Lease row exists and has not expired yet.
            db.rollback()
            current = (
                db.query(SyncLease)
                .filter(SyncLease.owner == owner, SyncLease.repo == repo)
                .first()
            )
            remaining = (
                (current.expires_at - now).total_seconds()
                if current is not None
                else self.cooldown.total_seconds()
            )
            logger.info(f"Sync for {owner}/{repo} rejected: lease held by {getattr(current, 'holder', None)}")
            raise RateLimitError(remaining)
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Failed to acquire sync lease for {owner}/{repo}: {e}") from e

        return expires_at
