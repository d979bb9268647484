"""Services"""

from issuemirror.services.github_client import GitHubClient
from issuemirror.services.query_service import QueryService
from issuemirror.services.reconciler import UpsertReconciler
from issuemirror.services.sync_guard import SyncGuard
from issuemirror.services.sync_ledger import SyncLedger
from issuemirror.services.sync_service import SyncService
from issuemirror.services.webhook_service import WebhookService

__all__ = [
    "GitHubClient",
    "QueryService",
    "SyncGuard",
    "SyncLedger",
    "SyncService",
    "UpsertReconciler",
    "WebhookService",
]
