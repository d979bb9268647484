"""Sync history model"""
import enum

from sqlalchemy import Column, DateTime, Enum, Index, Integer, String, Text

from issuemirror.models.base import Base, utcnow


class SyncStatus(str, enum.Enum):
    """Sync status enumeration"""
    SUCCESS = "success"
    FAILED = "failed"


class SyncType(str, enum.Enum):
    """What produced a sync record"""
    FULL = "full"
    INCREMENTAL = "incremental"
    WEBHOOK = "webhook"


class SyncRecord(Base):
    """Append-only audit of sync attempts (newest records per repository only)"""

    __tablename__ = "sync_history"
    __table_args__ = (Index("ix_sync_history_tenant_created", "owner", "repo", "created_at"),)

    id = Column(Integer, primary_key=True, index=True)

    owner = Column(String, nullable=False)
    repo = Column(String, nullable=False)

    status = Column(Enum(SyncStatus), nullable=False)
    sync_type = Column(Enum(SyncType), nullable=False)
    issues_synced = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)

    # Point in time this record covers; the incremental cursor for the next sync.
    last_sync_at = Column(DateTime, nullable=False, default=utcnow)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<SyncRecord({self.owner}/{self.repo}, status={self.status}, type={self.sync_type})>"
