import json
import unittest
from unittest.mock import patch

from tests.support import T0, FakeClock, make_session, raw_issue

SECRET = "s3cret"
REPOSITORY = {"name": "app", "owner": {"login": "octo"}}


def _issues_body(number=12, action="opened", **overrides):
    issue = {
        "number": number,
        "title": "Crash on start",
        "state": "open",
        "body": None,
        "labels": [{"name": "bug"}],
        "created_at": "2024-06-01T08:00:00Z",
    }
    issue.update(overrides)
    return json.dumps({"action": action, "issue": issue, "repository": REPOSITORY}).encode()


def _label_body(name, action="edited", color="ff0000"):
    label = {"name": name, "color": color}
    return json.dumps({"action": action, "label": label, "repository": REPOSITORY}).encode()


class WebhookServiceTests(unittest.TestCase):
    def setUp(self):
        from issuemirror.cache import CacheStore

        self.db = make_session()
        self.cache = CacheStore()
        self.clock = FakeClock()

    def tearDown(self):
        self.db.close()

    def _service(self, secret=SECRET):
        from issuemirror.services.sync_ledger import SyncLedger
        from issuemirror.services.webhook_service import WebhookService

        return WebhookService(
            self.db,
            self.cache,
            secret=secret,
            ledger=SyncLedger(self.db, clock=self.clock),
            clock=self.clock,
        )

    def _deliver(self, body, event_type="issues", svc=None):
        from issuemirror.security import compute_signature

        svc = svc or self._service()
        return svc.handle(body, compute_signature(SECRET, body), event_type)

    def _history(self):
        from issuemirror.services.sync_ledger import SyncLedger

        return SyncLedger(self.db).history("octo", "app")

    def _issues(self):
        from issuemirror.models import Issue

        return self.db.query(Issue).order_by(Issue.issue_number).all()

    def test_issue_event_is_upserted_and_recorded(self):
        from issuemirror.models.sync_record import SyncStatus, SyncType

        result = self._deliver(_issues_body())

        self.assertEqual(result, {
            "success": True,
            "event": "issues",
            "action": "opened",
            "issue_number": 12,
        })
        row = self._issues()[0]
        self.assertEqual(row.title, "Crash on start")
        # Webhook rows store an empty body instead of null.
        self.assertEqual(row.body, "")
        self.assertEqual(row.labels, ["bug"])

        record = self._history()[0]
        self.assertEqual(record.status, SyncStatus.SUCCESS)
        self.assertEqual(record.sync_type, SyncType.WEBHOOK)
        self.assertEqual(record.issues_synced, 1)

    def test_redelivery_keeps_one_row_and_created_at(self):
        body = _issues_body()
        self._deliver(body)
        self.clock.advance(300)
        self._deliver(body)

        rows = self._issues()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].created_at, T0)

    def test_missing_created_at_defaults_to_now(self):
        from datetime import datetime

        body = json.dumps({
            "action": "opened",
            "issue": {"number": 4, "title": "t", "state": "open"},
            "repository": REPOSITORY,
        }).encode()

        self._deliver(body)

        row = self._issues()[0]
        self.assertEqual(row.github_created_at, T0)
        self.assertIsInstance(row.github_created_at, datetime)

    def test_issue_event_invalidates_repository_cache(self):
        from issuemirror.cache import issues_key

        self.cache.set(issues_key("octo", "app"), {"issues": []})
        self.cache.set(issues_key("octo", "other"), {"issues": []})

        self._deliver(_issues_body())

        self.assertIsNone(self.cache.get(issues_key("octo", "app")))
        self.assertIsNotNone(self.cache.get(issues_key("octo", "other")))

    def test_mutated_signature_is_rejected(self):
        from issuemirror.errors import AuthenticationError
        from issuemirror.security import compute_signature

        body = _issues_body()
        signature = compute_signature(SECRET, body)
        bad = signature[:-1] + ("a" if signature[-1] != "a" else "b")

        with self.assertRaises(AuthenticationError):
            self._service().handle(body, bad, "issues")
        self.assertEqual(self._issues(), [])
        self.assertEqual(self._history(), [])

    def test_missing_secret_rejects_every_delivery(self):
        from issuemirror.errors import AuthenticationError

        with self.assertRaises(AuthenticationError):
            self._deliver(_issues_body(), svc=self._service(secret=""))
        self.assertEqual(self._issues(), [])

    def test_unsupported_event_is_rejected_without_record(self):
        from issuemirror.errors import UnsupportedEventError

        with self.assertRaises(UnsupportedEventError) as ctx:
            self._deliver(b'{"ref": "main"}', event_type="push")
        self.assertEqual(ctx.exception.event_type, "push")
        self.assertEqual(self._history(), [])

    def test_invalid_payload_writes_nothing(self):
        from issuemirror.errors import ValidationError

        body = json.dumps({"action": "opened", "issue": {"title": "t"}, "repository": REPOSITORY}).encode()

        with self.assertRaises(ValidationError):
            self._deliver(body)
        self.assertEqual(self._issues(), [])
        self.assertEqual(self._history(), [])

    def test_label_deleted_removes_label_only(self):
        from issuemirror.models import Label
        from issuemirror.services.reconciler import UpsertReconciler

        reconciler = UpsertReconciler(self.db, self.cache, clock=self.clock)
        reconciler.reconcile_label("octo", "app", {"name": "bug"})
        reconciler.reconcile_issue("octo", "app", raw_issue(1, labels=["bug"]))

        result = self._deliver(_label_body("bug", action="deleted"), event_type="label")

        self.assertEqual(result["issues_touched"], 0)
        self.assertEqual(self.db.query(Label).count(), 0)
        self.assertEqual(self._issues()[0].labels, ["bug"])

    def test_label_edited_touches_carrying_issues(self):
        from issuemirror.models import Label
        from issuemirror.services.reconciler import UpsertReconciler

        reconciler = UpsertReconciler(self.db, self.cache, clock=self.clock)
        reconciler.reconcile_label("octo", "app", {"name": "bug", "color": "000000"})
        for number in (1, 2, 3):
            reconciler.reconcile_issue("octo", "app", raw_issue(number, labels=["bug", "ui"]))
        reconciler.reconcile_issue("octo", "app", raw_issue(4, labels=["docs"]))

        later = self.clock.advance(90)
        result = self._deliver(_label_body("bug", color="ff0000"), event_type="label")

        self.assertEqual(result, {
            "success": True,
            "event": "label",
            "action": "edited",
            "label": "bug",
            "issues_touched": 3,
        })
        self.assertEqual(self.db.query(Label).one().color, "ff0000")
        rows = {row.issue_number: row for row in self._issues()}
        for number in (1, 2, 3):
            self.assertEqual(rows[number].updated_at, later)
            self.assertEqual(rows[number].labels, ["bug", "ui"])
        self.assertEqual(rows[4].updated_at, T0)
        self.assertEqual(self._history()[0].issues_synced, 3)

    def test_label_created_is_upserted(self):
        from issuemirror.models import Label

        self._deliver(_label_body("enhancement", action="created", color="a2eeef"), event_type="label")

        label = self.db.query(Label).one()
        self.assertEqual((label.owner, label.repo, label.name), ("octo", "app", "enhancement"))

    def test_store_failure_is_recorded_and_raised(self):
        from issuemirror.errors import StoreError
        from issuemirror.models.sync_record import SyncStatus, SyncType

        with patch(
            "issuemirror.services.reconciler.UpsertReconciler._upsert",
            side_effect=StoreError("disk full"),
        ):
            with self.assertRaises(StoreError):
                self._deliver(_issues_body())

        record = self._history()[0]
        self.assertEqual(record.status, SyncStatus.FAILED)
        self.assertEqual(record.sync_type, SyncType.WEBHOOK)
        self.assertEqual(record.error_message, "disk full")

    def test_expired_token_aborts_before_write(self):
        from issuemirror.cancellation import CancellationToken
        from issuemirror.errors import OperationCancelled
        from issuemirror.security import compute_signature

        token = CancellationToken()
        token.cancel("deadline exceeded")
        body = _issues_body()

        with self.assertRaises(OperationCancelled):
            self._service().handle(body, compute_signature(SECRET, body), "issues", token=token)
        self.assertEqual(self._issues(), [])


if __name__ == "__main__":
    unittest.main()
