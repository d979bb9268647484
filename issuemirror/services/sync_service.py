"""Issue synchronization service"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from issuemirror.cache import CacheStore, view_key
from issuemirror.cancellation import CancellationToken
from issuemirror.config import settings
from issuemirror.errors import OperationCancelled, RateLimitError, RepositoryNotFound
from issuemirror.models import Repository
from issuemirror.models.base import utcnow
from issuemirror.models.sync_record import SyncStatus, SyncType
from issuemirror.services.github_client import GitHubClient
from issuemirror.services.query_service import stored_view
from issuemirror.services.reconciler import UpsertReconciler, issue_view
from issuemirror.services.sync_guard import SyncGuard
from issuemirror.services.sync_ledger import SyncLedger

logger = logging.getLogger(__name__)


class SyncService:
    """Service for mirroring GitHub issues and labels into the store.

    The first sync of a repository fetches the most recently updated page of
    issues; later syncs only ask for issues updated since the previous
    successful sync. Syncs of one repository are spaced by a cooldown that
    starts when an attempt starts.
    """

    def __init__(
        self,
        db: Session,
        cache: CacheStore,
        guard: SyncGuard,
        *,
        ledger: Optional[SyncLedger] = None,
        clock: Callable[[], datetime] = utcnow,
        cache_ttl: Optional[float] = None,
    ):
        self.db = db
        self.cache = cache
        self.guard = guard
        self.clock = clock
        self.cache_ttl = cache_ttl if cache_ttl is not None else settings.cache_ttl_seconds
        self.ledger = ledger or SyncLedger(db, retention=settings.sync_history_limit, clock=clock)
        self.clients: Dict[Tuple[str, str], GitHubClient] = {}

    def close(self) -> None:
        for client in self.clients.values():
            client.close()
        self.clients.clear()

    def _get_repository(self, owner: str, repo: str) -> Optional[Repository]:
        return (
            self.db.query(Repository)
            .filter(Repository.owner == owner, Repository.repo == repo)
            .first()
        )

    def _get_client(self, owner: str, repo: str) -> Tuple[GitHubClient, int]:
        """Get or create the GitHub client for a repository, plus its page size"""
        repository = self._get_repository(owner, repo)
        per_page = (repository.issues_per_page if repository else None) or settings.issues_per_page

        key = (owner, repo)
        if key not in self.clients:
            if repository is None and not settings.github_token:
                raise RepositoryNotFound(
                    f"Repository {owner}/{repo} is not configured. Register it first."
                )
            token = (repository.access_token if repository else None) or settings.github_token
            self.clients[key] = GitHubClient(
                token,
                base_url=settings.github_api_url,
                timeout=settings.github_timeout_seconds,
            )
        return self.clients[key], per_page

    def _sync_labels(
        self,
        client: GitHubClient,
        reconciler: UpsertReconciler,
        owner: str,
        repo: str,
        token: CancellationToken,
    ) -> Dict[str, int]:
        """Mirror every upstream label. Single label failures are counted, not raised."""
        token.raise_if_cancelled("label fetch")
        labels = client.list_labels(owner, repo)

        synced = 0
        failed = 0
        for label in labels:
            try:
                reconciler.reconcile_label(owner, repo, label)
                synced += 1
            except OperationCancelled:
                raise
            except Exception as e:
                failed += 1
                logger.warning(f"Failed to sync label {label.get('name')!r} for {owner}/{repo}: {e}")

        if failed:
            logger.warning(
                f"Synced {len(labels)} labels for {owner}/{repo}: {synced} succeeded, {failed} failed"
            )
        else:
            logger.info(f"Successfully synced {len(labels)} labels for {owner}/{repo}")
        return {"synced": synced, "failed": failed}

    @staticmethod
    def _merge_views(
        previous: List[Dict[str, Any]], fetched: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """Merge by issue number: changed issues keep their slot, new ones are appended."""
        merged = {item["number"]: item for item in previous}
        for item in fetched:
            merged[item["number"]] = item
        return list(merged.values())

    def sync_repository(
        self,
        owner: str,
        repo: str,
        per_page: Optional[int] = None,
        token: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        """Sync labels and the first page of changed issues for a repository"""
        owner, repo = owner.strip(), repo.strip()
        token = token or CancellationToken()
        client, default_per_page = self._get_client(owner, repo)
        per_page = per_page or default_per_page

        started_at = self.clock()
        cached_view_key = view_key(owner, repo)
        reconciler = UpsertReconciler(self.db, self.cache, clock=self.clock, token=token)

        try:
            self.guard.acquire(self.db, owner, repo, started_at)

            # Changed labels are written first and invalidate the cache, so grab the
            # current view before touching anything.
            previous_view = self.cache.get(cached_view_key)

            label_stats = self._sync_labels(client, reconciler, owner, repo, token)

            token.raise_if_cancelled("sync history lookup")
            last_sync = self.ledger.last_successful_sync(owner, repo)
            since = last_sync.last_sync_at if last_sync is not None else None
            sync_type = SyncType.INCREMENTAL if since is not None else SyncType.FULL

            if since is None:
                logger.info(f"Performing full sync for {owner}/{repo}")
            else:
                logger.info(f"Performing incremental sync for {owner}/{repo} since {since.isoformat()}")

            token.raise_if_cancelled("issue fetch")
            raw_issues = client.list_issues(
                owner,
                repo,
                state="all",
                per_page=per_page,
                page=1,
                sort="updated",
                direction="desc",
                since=since,
            )

            if sync_type is SyncType.INCREMENTAL and not raw_issues:
                logger.info(f"No updates found for {owner}/{repo} since last sync")
                self.ledger.record(
                    owner, repo, SyncStatus.SUCCESS, SyncType.INCREMENTAL, 0, last_sync_at=started_at
                )
                return {
                    "success": True,
                    "total_synced": 0,
                    "sync_type": SyncType.INCREMENTAL.value,
                    "labels": label_stats,
                }

            written = [reconciler.reconcile_issue(owner, repo, raw) for raw in raw_issues]
            fetched_view = [issue_view(values) for values in written]

            if sync_type is SyncType.INCREMENTAL:
                base = previous_view["issues"] if previous_view else stored_view(self.db, owner, repo)
                view = self._merge_views(base, fetched_view)
            else:
                view = fetched_view

            self.ledger.record(
                owner, repo, SyncStatus.SUCCESS, sync_type, len(written), last_sync_at=started_at
            )

            self.cache.invalidate_tenant(owner, repo)
            self.cache.set(cached_view_key, {"issues": view}, ttl=self.cache_ttl)

            logger.info(f"Synced {len(written)} issues from GitHub for {owner}/{repo} ({sync_type.value})")
            return {
                "success": True,
                "total_synced": len(written),
                "sync_type": sync_type.value,
                "labels": label_stats,
            }

        except RateLimitError as e:
            logger.info(f"Sync for {owner}/{repo} rejected: {e}")
            raise
        except Exception as e:
            logger.error(f"Sync failed for {owner}/{repo}: {e}")
            self.ledger.record_failure(owner, repo, SyncType.FULL, e)
            raise
