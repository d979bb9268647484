"""Database base configuration"""
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from issuemirror.config import settings

engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if "sqlite" in settings.database_url else {},
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def utcnow() -> datetime:
    """UTC 'now' as tz-naive datetime (consistent with GitHub timestamp parsing)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _ensure_unique_indexes(bind=None):
    """
    Best-effort schema hardening:
    ON CONFLICT upserts need a unique index on each conflict key. Tables created
    by older builds may predate the constraints, so add the indexes if missing.
    """
    bind = bind or engine
    stmts = [
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_issues_tenant_number "
        "ON issues(owner, repo, issue_number)",
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_labels_tenant_name ON labels(owner, repo, name)",
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_sync_leases_tenant ON sync_leases(owner, repo)",
    ]
    for sql in stmts:
        try:
            with bind.begin() as conn:
                conn.exec_driver_sql(sql)
        except Exception:
            # Best-effort only; do not block app startup.
            pass


def init_db(bind=None):
    """Initialize database"""
    # Ensure all models are imported so SQLAlchemy metadata is populated.
    import issuemirror.models  # noqa: F401  (import for side-effects)

    Base.metadata.create_all(bind=bind or engine)
    _ensure_unique_indexes(bind)
