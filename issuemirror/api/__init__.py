"""API routes"""

from issuemirror.api import issues, repositories, sync, webhooks

__all__ = ["issues", "repositories", "sync", "webhooks"]
