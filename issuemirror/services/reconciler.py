"""Idempotent issue/label writes shared by the sync and webhook paths"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from issuemirror.cache import CacheStore
from issuemirror.cancellation import CancellationToken
from issuemirror.errors import StoreError, ValidationError
from issuemirror.models import Issue, Label
from issuemirror.models.base import utcnow

logger = logging.getLogger(__name__)

ISSUE_KEY = ("owner", "repo", "issue_number")
LABEL_KEY = ("owner", "repo", "name")
LABEL_CONTENT = ("color", "description")

# Columns an upsert never overwrites on an existing row.
PRESERVED_ON_CONFLICT = frozenset({"created_at"})


def _trim(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse GitHub ISO8601 timestamps into UTC tz-naive datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise ValidationError(f"Invalid timestamp: {value!r}") from e
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def label_names(labels: Optional[Iterable[Any]]) -> List[str]:
    """Flatten upstream labels (objects or plain names) to an ordered, de-duplicated name list."""
    names: List[str] = []
    for item in labels or []:
        name = item.get("name") if isinstance(item, Mapping) else item
        if not isinstance(name, str):
            continue
        name = name.strip()
        if name and name not in names:
            names.append(name)
    return names


def normalize_issue(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Normalize a raw issue payload. A null body is preserved."""
    number = raw.get("number", raw.get("issue_number"))
    try:
        issue_number = int(str(number).strip())
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid issue number: {number!r}") from e

    return {
        "issue_number": issue_number,
        "title": _trim(raw.get("title")) or "",
        "body": _trim(raw.get("body")),
        "state": _trim(raw.get("state")) or "",
        "labels": label_names(raw.get("labels")),
        "github_created_at": parse_timestamp(raw.get("github_created_at", raw.get("created_at"))),
    }


def normalize_label(raw: Mapping[str, Any]) -> Dict[str, Any]:
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"Invalid label name: {name!r}")
    return {
        "name": name.strip(),
        "color": _trim(raw.get("color")) or "",
        "description": _trim(raw.get("description")),
    }


def issue_view(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Serialized issue as held in cached list views (same shape as Issue.to_dict)."""
    github_created_at = values.get("github_created_at")
    updated_at = values.get("updated_at")
    return {
        "number": values["issue_number"],
        "title": values["title"],
        "body": values.get("body"),
        "state": values["state"],
        "labels": list(values.get("labels") or []),
        "github_created_at": github_created_at.isoformat() if github_created_at else None,
        "updated_at": updated_at.isoformat() if updated_at else None,
    }


class UpsertReconciler:
    """Writes normalized issue/label records whether or not a row already exists.

    Every successful write invalidates all cache entries of the repository
    right after the commit; list and filtered views depend on the row.
    """

    def __init__(
        self,
        db: Session,
        cache: CacheStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        token: Optional[CancellationToken] = None,
    ):
        self.db = db
        self.cache = cache
        self.clock = clock
        self.token = token or CancellationToken()

    def _insert(self, model):
        dialect = self.db.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite_insert(model)
        if dialect == "postgresql":
            return pg_insert(model)
        raise StoreError(f"Upserts are not supported on the '{dialect}' dialect")

    def _upsert(
        self,
        model,
        values: Dict[str, Any],
        conflict_keys: Sequence[str],
        changed_columns: Optional[Sequence[str]] = None,
    ) -> int:
        """INSERT ... ON CONFLICT DO UPDATE, keeping preserved columns of existing rows.

        With ``changed_columns`` an existing row is only updated when one of
        those columns differs. Returns the number of rows written.
        """
        stmt = self._insert(model).values(**values)
        where = None
        if changed_columns:
            table = model.__table__
            where = or_(
                *(table.c[col].is_distinct_from(stmt.excluded[col]) for col in changed_columns)
            )
        stmt = stmt.on_conflict_do_update(
            index_elements=list(conflict_keys),
            set_={
                col: stmt.excluded[col]
                for col in values
                if col not in conflict_keys and col not in PRESERVED_ON_CONFLICT
            },
            where=where,
        )
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to upsert into {model.__tablename__}: {e}") from e
        return result.rowcount

    def reconcile_issue(self, owner: str, repo: str, issue: Mapping[str, Any]) -> Dict[str, Any]:
        """Upsert one issue; returns the values written (created_at only applies to new rows)."""
        owner, repo = owner.strip(), repo.strip()
        values = normalize_issue(issue)
        now = self.clock()
        values.update(owner=owner, repo=repo, created_at=now, updated_at=now)

        self.token.raise_if_cancelled("issue upsert")
        self._upsert(Issue, values, ISSUE_KEY)
        self.cache.invalidate_tenant(owner, repo)

        logger.debug(f"Reconciled issue {owner}/{repo}#{values['issue_number']}")
        return values

    def reconcile_label(self, owner: str, repo: str, label: Mapping[str, Any]) -> Dict[str, Any]:
        owner, repo = owner.strip(), repo.strip()
        values = normalize_label(label)
        now = self.clock()
        values.update(owner=owner, repo=repo, created_at=now, updated_at=now)

        self.token.raise_if_cancelled("label upsert")
        written = self._upsert(Label, values, LABEL_KEY, changed_columns=LABEL_CONTENT)
        if not written:
            # Identical to the stored row; nothing changed, nothing to invalidate.
            logger.debug(f"Label '{values['name']}' for {owner}/{repo} is unchanged")
            return values
        self.cache.invalidate_tenant(owner, repo)

        logger.debug(f"Reconciled label '{values['name']}' for {owner}/{repo}")
        return values

    def delete_label(self, owner: str, repo: str, name: str) -> int:
        """Delete one label row. Issues referencing the name keep it in their label list."""
        owner, repo, name = owner.strip(), repo.strip(), name.strip()
        self.token.raise_if_cancelled("label delete")
        try:
            deleted = (
                self.db.query(Label)
                .filter(Label.owner == owner, Label.repo == repo, Label.name == name)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to delete label '{name}': {e}") from e
        self.cache.invalidate_tenant(owner, repo)

        logger.info(f"Deleted label '{name}' from {owner}/{repo} ({deleted} row(s))")
        return deleted

    def touch_issues_with_label(self, owner: str, repo: str, name: str) -> int:
        """Bump updated_at on every issue carrying ``name``; label lists are left as-is."""
        owner, repo, name = owner.strip(), repo.strip(), name.strip()
        self.token.raise_if_cancelled("issue touch")
        now = self.clock()
        touched = 0
        try:
            rows = self.db.query(Issue).filter(Issue.owner == owner, Issue.repo == repo).all()
            for row in rows:
                if name in (row.labels or []):
                    row.updated_at = now
                    touched += 1
            if touched:
                self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Failed to touch issues labelled '{name}': {e}") from e
        if touched:
            self.cache.invalidate_tenant(owner, repo)

        logger.info(f"Touched {touched} issue(s) labelled '{name}' in {owner}/{repo}")
        return touched
