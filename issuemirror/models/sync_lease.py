"""Sync lease model"""
from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from issuemirror.models.base import Base


class SyncLease(Base):
    """Per-repository cooldown lease.

    A sync may start only when no lease exists for the repository or the
    existing one has expired. Leases are never released early: expiry is the
    cooldown measured from the start of the attempt.
    """

    __tablename__ = "sync_leases"
    __table_args__ = (UniqueConstraint("owner", "repo", name="uq_sync_leases_tenant"),)

    id = Column(Integer, primary_key=True, index=True)
    owner = Column(String, nullable=False)
    repo = Column(String, nullable=False)
    started_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    holder = Column(String, nullable=True)

    def __repr__(self):
        return f"<SyncLease({self.owner}/{self.repo}, expires_at={self.expires_at})>"
