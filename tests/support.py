"""Shared fakes for the unit tests."""

from datetime import datetime, timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

T0 = datetime(2025, 1, 1, 12, 0, 0)


def make_session():
    """Fresh in-memory SQLite database with the full schema."""
    from issuemirror.models.base import init_db

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


class FakeClock:
    """Callable returning a controllable tz-naive UTC datetime."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeGitHubClient:
    def __init__(self, issues=None, labels=None, issues_error=None, labels_error=None):
        self.issues = list(issues or [])
        self.labels = list(labels or [])
        self.issues_error = issues_error
        self.labels_error = labels_error
        self.issue_calls = []
        self.label_calls = 0
        self.closed = False

    def list_issues(self, owner, repo, **params):
        self.issue_calls.append(params)
        if self.issues_error is not None:
            raise self.issues_error
        return list(self.issues)

    def list_labels(self, owner, repo):
        self.label_calls += 1
        if self.labels_error is not None:
            raise self.labels_error
        return list(self.labels)

    def close(self):
        self.closed = True


def raw_issue(number, title="Issue", state="open", labels=(), body=None, created_at="2024-06-01T08:00:00Z"):
    return {
        "number": number,
        "title": title,
        "body": body,
        "state": state,
        "labels": [{"name": name, "color": "ededed"} for name in labels],
        "created_at": created_at,
    }
