"""Mirrored label model"""
from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from issuemirror.models.base import Base, utcnow


class Label(Base):
    """Label mirrored from a GitHub repository"""

    __tablename__ = "labels"
    __table_args__ = (UniqueConstraint("owner", "repo", "name", name="uq_labels_tenant_name"),)

    id = Column(Integer, primary_key=True, index=True)

    owner = Column(String, nullable=False, index=True)
    repo = Column(String, nullable=False, index=True)

    name = Column(String, nullable=False)
    color = Column(String, nullable=False, default="")
    description = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {"name": self.name, "color": self.color, "description": self.description}

    def __repr__(self):
        return f"<Label({self.owner}/{self.repo}:{self.name})>"
