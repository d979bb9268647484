"""Background scheduler for periodic sync"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from issuemirror.cache import CacheStore
from issuemirror.errors import RateLimitError
from issuemirror.models import Repository
from issuemirror.models.base import SessionLocal
from issuemirror.services.sync_guard import SyncGuard
from issuemirror.services.sync_service import SyncService

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Scheduler for periodic repository synchronization"""

    JOB_PREFIX = "sync_repository_"

    def __init__(self, cache: CacheStore, guard: SyncGuard, session_factory=SessionLocal):
        self.cache = cache
        self.guard = guard
        self.session_factory = session_factory
        self.scheduler = BackgroundScheduler()

    @classmethod
    def _job_id(cls, repository_id: int) -> str:
        return f"{cls.JOB_PREFIX}{repository_id}"

    def start(self):
        """Start the scheduler"""
        self.scheduler.start()
        logger.info("Sync scheduler started")

        # Schedule all enabled repositories
        self.schedule_all()

    def stop(self):
        """Stop the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Sync scheduler stopped")

    def schedule_all(self):
        """Schedule sync jobs for all enabled repositories"""
        db = self.session_factory()
        try:
            enabled = db.query(Repository).filter(Repository.sync_enabled.is_(True)).all()
            enabled_ids = {r.id for r in enabled}

            # If this is ever re-run, drop jobs for repositories that went away.
            for job in self.scheduler.get_jobs():
                if not job.id.startswith(self.JOB_PREFIX):
                    continue
                try:
                    repository_id = int(job.id[len(self.JOB_PREFIX):])
                except ValueError:
                    continue
                if repository_id not in enabled_ids:
                    self.unschedule(repository_id)

            for repository in enabled:
                self.schedule(repository.id, repository.sync_interval_minutes)
        finally:
            db.close()

    def schedule(self, repository_id: int, interval_minutes: int):
        """Schedule sync job for a specific repository"""
        self.scheduler.add_job(
            func=self._sync_job,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id=self._job_id(repository_id),
            args=[repository_id],
            replace_existing=True,
        )
        logger.info(f"Scheduled sync for repository {repository_id} every {interval_minutes} minutes")

    def unschedule(self, repository_id: int):
        """Remove sync job for a repository"""
        job_id = self._job_id(repository_id)
        if self.scheduler.get_job(job_id) is not None:
            self.scheduler.remove_job(job_id)
            logger.info(f"Unscheduled sync for repository {repository_id}")

    def _sync_job(self, repository_id: int):
        """Job function to sync a repository"""
        db = self.session_factory()
        sync_service = SyncService(db, self.cache, self.guard)
        try:
            repository = db.query(Repository).filter(Repository.id == repository_id).first()
            if repository is None or not repository.sync_enabled:
                logger.info(f"Skipping scheduled sync for repository {repository_id}: not enabled")
                return
            logger.info(f"Running scheduled sync for {repository.full_name}")
            result = sync_service.sync_repository(repository.owner, repository.repo)
            logger.info(f"Scheduled sync completed for {repository.full_name}: {result}")
        except RateLimitError as e:
            logger.info(f"Scheduled sync for repository {repository_id} skipped: {e}")
        except Exception as e:
            logger.error(f"Scheduled sync failed for repository {repository_id}: {e}")
        finally:
            sync_service.close()
            db.close()
