"""GitHub REST API client wrapper"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from issuemirror.errors import UpstreamError

logger = logging.getLogger(__name__)

_NEXT_LINK_RE = re.compile(r'\s*<([^>]+)>;\s*rel="next"')


def format_since(value: datetime) -> str:
    """Render a cursor timestamp the way GitHub expects (ISO 8601, UTC, 'Z')."""
    # Our DB uses UTC tz-naive; assume UTC if tzinfo is missing.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class GitHubClient:
    """Wrapper for the GitHub issue and label endpoints.

    Requests are made once; retrying is left to the caller.
    """

    BASE_URL = "https://api.github.com"
    LABELS_PER_PAGE = 100
    MAX_LABEL_PAGES = 50

    def __init__(
        self,
        token: Optional[str],
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize GitHub client"""
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "issuemirror",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            response = self._client.get(path, params=params)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = f"GitHub returned {status} for {path}"
            try:
                detail = e.response.json().get("message")
            except (ValueError, AttributeError):
                detail = None
            if detail:
                message = f"{message}: {detail}"
            raise UpstreamError(message, status_code=status) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"GitHub request to {path} failed: {e}") from e

    def _next_link(self, response: httpx.Response) -> Optional[str]:
        for part in response.headers.get("Link", "").split(","):
            match = _NEXT_LINK_RE.match(part.strip())
            if match:
                url = match.group(1)
                # Never follow pagination links off the API host.
                if not url.startswith(self.base_url + "/"):
                    logger.warning(f"Ignoring pagination link outside {self.base_url}: {url[:100]}")
                    return None
                return url[len(self.base_url):]
        return None

    def list_issues(
        self,
        owner: str,
        repo: str,
        *,
        state: str = "all",
        per_page: int = 50,
        page: int = 1,
        sort: str = "updated",
        direction: str = "desc",
        since: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch one page of issues, optionally only those updated since a cursor"""
        params: Dict[str, Any] = {
            "state": state,
            "per_page": per_page,
            "page": page,
            "sort": sort,
            "direction": direction,
        }
        if since is not None:
            params["since"] = format_since(since)

        try:
            data = self._get(f"/repos/{owner}/{repo}/issues", params=params).json()
        except ValueError as e:
            raise UpstreamError(f"GitHub returned invalid JSON for {owner}/{repo} issues") from e
        if not isinstance(data, list):
            raise UpstreamError(f"Unexpected issue listing payload for {owner}/{repo}")
        return data

    def list_labels(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        """Fetch every label of a repository, following Link pagination"""
        labels: List[Dict[str, Any]] = []
        path: Optional[str] = f"/repos/{owner}/{repo}/labels"
        params: Optional[Dict[str, Any]] = {"per_page": self.LABELS_PER_PAGE}

        for _ in range(self.MAX_LABEL_PAGES):
            response = self._get(path, params=params)
            try:
                data = response.json()
            except ValueError as e:
                raise UpstreamError(f"GitHub returned invalid JSON for {owner}/{repo} labels") from e
            if isinstance(data, list):
                labels.extend(data)
            path = self._next_link(response)
            if not path:
                break
            params = None  # query string is embedded in the next link

        return labels
