"""GitHub webhook ingestion"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from issuemirror.cache import CacheStore
from issuemirror.cancellation import CancellationToken
from issuemirror.config import settings
from issuemirror.errors import AuthenticationError, UnsupportedEventError
from issuemirror.models.base import utcnow
from issuemirror.models.sync_record import SyncStatus, SyncType
from issuemirror.security import verify_signature
from issuemirror.services.reconciler import UpsertReconciler
from issuemirror.services.sync_ledger import SyncLedger
from issuemirror.services.webhook_events import (
    IssuesEvent,
    LabelEvent,
    UnsupportedEvent,
    decode_event,
)

logger = logging.getLogger(__name__)


class WebhookService:
    """Applies GitHub ``issues`` and ``label`` deliveries to the store.

    Deliveries go through the same upserts as a sync, so a redelivered event
    rewrites identical values and keeps the original created_at.
    """

    def __init__(
        self,
        db: Session,
        cache: CacheStore,
        *,
        secret: Optional[str] = None,
        ledger: Optional[SyncLedger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.cache = cache
        self.secret = secret if secret is not None else settings.github_webhook_secret
        self.clock = clock
        self.ledger = ledger or SyncLedger(db, retention=settings.sync_history_limit, clock=clock)

    def handle(
        self,
        raw_payload: bytes,
        signature_header: Optional[str],
        event_type: Optional[str],
        token: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        """Verify, decode and apply one delivery"""
        if not verify_signature(self.secret, raw_payload, signature_header):
            raise AuthenticationError("Invalid signature")

        event = decode_event(event_type, raw_payload)
        if isinstance(event, UnsupportedEvent):
            logger.info(f"Ignoring unsupported webhook event type: {event.event_type}")
            raise UnsupportedEventError(event.event_type)

        token = token or CancellationToken()
        owner, repo = event.owner.strip(), event.repo.strip()
        reconciler = UpsertReconciler(self.db, self.cache, clock=self.clock, token=token)

        try:
            if isinstance(event, IssuesEvent):
                return self._handle_issue(reconciler, owner, repo, event)
            return self._handle_label(reconciler, owner, repo, event)
        except Exception as e:
            logger.error(f"Webhook processing failed for {owner}/{repo} ({event.kind}): {e}")
            self.ledger.record_failure(owner, repo, SyncType.WEBHOOK, e)
            raise

    def _handle_issue(
        self, reconciler: UpsertReconciler, owner: str, repo: str, event: IssuesEvent
    ) -> Dict[str, Any]:
        issue = event.issue
        now = self.clock()
        record = {
            "number": issue.number,
            "title": issue.title,
            # Webhook rows never carry a null body.
            "body": issue.body or "",
            "state": issue.state,
            "labels": [label.name for label in issue.labels or []],
            "created_at": issue.created_at or now,
        }
        values = reconciler.reconcile_issue(owner, repo, record)
        self.ledger.record(owner, repo, SyncStatus.SUCCESS, SyncType.WEBHOOK, 1)

        logger.info(f"Applied issues.{event.action} for {owner}/{repo}#{values['issue_number']}")
        return {
            "success": True,
            "event": "issues",
            "action": event.action,
            "issue_number": values["issue_number"],
        }

    def _handle_label(
        self, reconciler: UpsertReconciler, owner: str, repo: str, event: LabelEvent
    ) -> Dict[str, Any]:
        label = event.label
        if event.action == "deleted":
            reconciler.delete_label(owner, repo, label.name)
            touched = 0
        else:
            reconciler.reconcile_label(owner, repo, label.model_dump())
            # Issue list views show label metadata; bump the carrying issues so
            # they are picked up without a full re-sync.
            touched = reconciler.touch_issues_with_label(owner, repo, label.name)

        self.ledger.record(owner, repo, SyncStatus.SUCCESS, SyncType.WEBHOOK, touched)

        logger.info(f"Applied label.{event.action} '{label.name}' for {owner}/{repo}")
        return {
            "success": True,
            "event": "label",
            "action": event.action,
            "label": label.name,
            "issues_touched": touched,
        }
