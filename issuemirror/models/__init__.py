"""Database models"""

from issuemirror.models.base import Base
from issuemirror.models.issue import Issue
from issuemirror.models.label import Label
from issuemirror.models.repository import Repository
from issuemirror.models.sync_lease import SyncLease
from issuemirror.models.sync_record import SyncRecord

__all__ = [
    "Base",
    "Issue",
    "Label",
    "Repository",
    "SyncLease",
    "SyncRecord",
]
