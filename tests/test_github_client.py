import json
import unittest
from datetime import datetime, timedelta, timezone

import httpx


def _json_response(payload, status_code=200, headers=None):
    return httpx.Response(status_code, content=json.dumps(payload).encode(), headers=headers)


class GitHubClientTests(unittest.TestCase):
    def _client(self, handler, token="ghp_test"):
        from issuemirror.services.github_client import GitHubClient

        return GitHubClient(token, transport=httpx.MockTransport(handler))

    def test_list_issues_sends_query_and_auth(self):
        seen = []

        def handler(request):
            seen.append(request)
            return _json_response([{"number": 1}])

        with self._client(handler) as client:
            issues = client.list_issues("octo", "app", per_page=25)

        self.assertEqual(issues, [{"number": 1}])
        request = seen[0]
        self.assertEqual(request.url.path, "/repos/octo/app/issues")
        self.assertEqual(dict(request.url.params), {
            "state": "all",
            "per_page": "25",
            "page": "1",
            "sort": "updated",
            "direction": "desc",
        })
        self.assertEqual(request.headers["Authorization"], "Bearer ghp_test")
        self.assertEqual(request.headers["Accept"], "application/vnd.github+json")

    def test_list_issues_formats_since_in_utc(self):
        seen = []

        def handler(request):
            seen.append(request)
            return _json_response([])

        client = self._client(handler)
        client.list_issues("octo", "app", since=datetime(2024, 6, 1, 8, 30, 15, 999))
        client.list_issues(
            "octo", "app", since=datetime(2024, 6, 1, 10, 30, 15, tzinfo=timezone(timedelta(hours=2)))
        )

        self.assertEqual(seen[0].url.params["since"], "2024-06-01T08:30:15Z")
        self.assertEqual(seen[1].url.params["since"], "2024-06-01T08:30:15Z")

    def test_no_authorization_without_token(self):
        seen = []

        def handler(request):
            seen.append(request)
            return _json_response([])

        self._client(handler, token=None).list_issues("octo", "app")

        self.assertNotIn("Authorization", seen[0].headers)

    def test_list_labels_follows_link_pagination(self):
        pages = {
            "1": (
                [{"name": "bug"}, {"name": "ui"}],
                {"Link": '<https://api.github.com/repos/octo/app/labels?per_page=100&page=2>; rel="next", '
                         '<https://api.github.com/repos/octo/app/labels?per_page=100&page=2>; rel="last"'},
            ),
            "2": ([{"name": "docs"}], {}),
        }

        def handler(request):
            payload, headers = pages[request.url.params.get("page", "1")]
            return _json_response(payload, headers=headers)

        labels = self._client(handler).list_labels("octo", "app")

        self.assertEqual([label["name"] for label in labels], ["bug", "ui", "docs"])

    def test_pagination_link_to_other_host_is_ignored(self):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            return _json_response(
                [{"name": "bug"}],
                headers={"Link": '<https://evil.example.com/labels?page=2>; rel="next"'},
            )

        labels = self._client(handler).list_labels("octo", "app")

        self.assertEqual(len(calls), 1)
        self.assertEqual(labels, [{"name": "bug"}])

    def test_http_errors_become_upstream_errors(self):
        from issuemirror.errors import UpstreamError

        def handler(request):
            return _json_response({"message": "Not Found"}, status_code=404)

        with self.assertRaises(UpstreamError) as ctx:
            self._client(handler).list_issues("octo", "missing")

        self.assertEqual(ctx.exception.status_code, 404)
        self.assertIn("404", str(ctx.exception))
        self.assertIn("Not Found", str(ctx.exception))

    def test_transport_errors_become_upstream_errors(self):
        from issuemirror.errors import UpstreamError

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(UpstreamError) as ctx:
            self._client(handler).list_labels("octo", "app")

        self.assertIsNone(ctx.exception.status_code)

    def test_unexpected_payloads_are_rejected(self):
        from issuemirror.errors import UpstreamError

        def not_a_list(request):
            return _json_response({"items": []})

        def not_json(request):
            return httpx.Response(200, content=b"<html>")

        with self.assertRaises(UpstreamError):
            self._client(not_a_list).list_issues("octo", "app")
        with self.assertRaises(UpstreamError):
            self._client(not_json).list_issues("octo", "app")


class FormatSinceTests(unittest.TestCase):
    def test_naive_datetimes_are_treated_as_utc(self):
        from issuemirror.services.github_client import format_since

        self.assertEqual(format_since(datetime(2025, 1, 2, 3, 4, 5)), "2025-01-02T03:04:05Z")


if __name__ == "__main__":
    unittest.main()
