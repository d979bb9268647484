"""Tracked repository model"""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint

from issuemirror.models.base import Base, utcnow


class Repository(Base):
    """GitHub repository registered for mirroring"""

    __tablename__ = "repositories"
    __table_args__ = (UniqueConstraint("owner", "repo", name="uq_repositories_tenant"),)

    id = Column(Integer, primary_key=True, index=True)
    owner = Column(String, nullable=False)
    repo = Column(String, nullable=False)
    # Falls back to settings.github_token when unset.
    access_token = Column(String, nullable=True)
    issues_per_page = Column(Integer, nullable=False, default=50)

    # Background sync
    sync_enabled = Column(Boolean, default=True)
    sync_interval_minutes = Column(Integer, default=10)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def __repr__(self):
        return f"<Repository('{self.full_name}', sync_enabled={self.sync_enabled})>"
