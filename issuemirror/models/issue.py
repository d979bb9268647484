"""Mirrored issue model"""
from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, UniqueConstraint

from issuemirror.models.base import Base, utcnow


class Issue(Base):
    """Issue mirrored from a GitHub repository"""

    __tablename__ = "issues"
    __table_args__ = (
        UniqueConstraint("owner", "repo", "issue_number", name="uq_issues_tenant_number"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Tenant
    owner = Column(String, nullable=False, index=True)
    repo = Column(String, nullable=False, index=True)

    issue_number = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=True)
    state = Column(String, nullable=False)  # free-form upstream value, e.g. "open"/"closed"
    labels = Column(JSON, nullable=False, default=list)  # ordered label names

    # First time we saw the issue; never overwritten by later upserts.
    created_at = Column(DateTime, nullable=False, default=utcnow)
    github_created_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "number": self.issue_number,
            "title": self.title,
            "body": self.body,
            "state": self.state,
            "labels": list(self.labels or []),
            "github_created_at": self.github_created_at.isoformat() if self.github_created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Issue({self.owner}/{self.repo}#{self.issue_number}, state='{self.state}')>"
