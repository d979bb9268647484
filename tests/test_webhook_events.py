import json
import unittest


def _issues_payload(**issue_overrides):
    issue = {
        "number": 12,
        "title": "Crash on start",
        "state": "open",
        "body": "Stack trace attached",
        "labels": [{"name": "bug", "color": "d73a4a"}],
        "created_at": "2024-06-01T08:00:00Z",
    }
    issue.update(issue_overrides)
    return {
        "action": "opened",
        "issue": issue,
        "repository": {"name": "app", "owner": {"login": "octo"}},
    }


class DecodeEventTests(unittest.TestCase):
    def test_issues_event(self):
        from issuemirror.services.webhook_events import IssuesEvent, decode_event

        event = decode_event("issues", json.dumps(_issues_payload()).encode())

        self.assertIsInstance(event, IssuesEvent)
        self.assertEqual(event.kind, "issues")
        self.assertEqual((event.owner, event.repo), ("octo", "app"))
        self.assertEqual(event.issue.number, 12)
        self.assertEqual([label.name for label in event.issue.labels], ["bug"])

    def test_label_event(self):
        from issuemirror.services.webhook_events import LabelEvent, decode_event

        payload = {
            "action": "edited",
            "label": {"name": " bug ", "color": "ff0000"},
            "repository": {"name": "app", "owner": {"login": "octo"}},
        }

        event = decode_event("label", json.dumps(payload).encode())

        self.assertIsInstance(event, LabelEvent)
        self.assertEqual(event.action, "edited")
        self.assertEqual(event.label.name, "bug")

    def test_unknown_event_type_is_unsupported(self):
        from issuemirror.services.webhook_events import UnsupportedEvent, decode_event

        for event_type in ("push", "pull_request", None, ""):
            with self.subTest(event_type=event_type):
                event = decode_event(event_type, b"not even json")
                self.assertIsInstance(event, UnsupportedEvent)
                self.assertEqual(event.event_type, event_type)

    def test_event_type_header_is_case_insensitive(self):
        from issuemirror.services.webhook_events import IssuesEvent, decode_event

        event = decode_event(" Issues ", json.dumps(_issues_payload()).encode())

        self.assertIsInstance(event, IssuesEvent)

    def test_optional_issue_fields_may_be_missing_or_null(self):
        from issuemirror.services.webhook_events import decode_event

        payload = _issues_payload(body=None, labels=None)
        del payload["issue"]["created_at"]

        event = decode_event("issues", json.dumps(payload).encode())

        self.assertIsNone(event.issue.body)
        self.assertIsNone(event.issue.labels)
        self.assertIsNone(event.issue.created_at)

    def test_invalid_payloads_raise_validation_error(self):
        from issuemirror.errors import ValidationError
        from issuemirror.services.webhook_events import decode_event

        missing_number = _issues_payload()
        del missing_number["issue"]["number"]
        missing_repository = _issues_payload()
        del missing_repository["repository"]

        cases = {
            "not json": (b"{nope", "issues"),
            "missing number": (json.dumps(missing_number).encode(), "issues"),
            "missing repository": (json.dumps(missing_repository).encode(), "issues"),
            "empty title": (json.dumps(_issues_payload(title="  ")).encode(), "issues"),
            "zero number": (json.dumps(_issues_payload(number=0)).encode(), "issues"),
            "numeric label name": (
                json.dumps(_issues_payload(labels=[{"name": 5}])).encode(),
                "issues",
            ),
            "label without action": (
                json.dumps({
                    "label": {"name": "bug"},
                    "repository": {"name": "app", "owner": {"login": "octo"}},
                }).encode(),
                "label",
            ),
        }
        for name, (raw, event_type) in cases.items():
            with self.subTest(case=name), self.assertRaises(ValidationError):
                decode_event(event_type, raw)

    def test_validation_message_names_the_field(self):
        from issuemirror.errors import ValidationError
        from issuemirror.services.webhook_events import decode_event

        payload = _issues_payload()
        del payload["issue"]["number"]

        with self.assertRaises(ValidationError) as ctx:
            decode_event("issues", json.dumps(payload).encode())
        self.assertIn("issue.number", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
