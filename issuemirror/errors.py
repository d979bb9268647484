"""Error taxonomy shared by the sync and webhook paths."""

import math
from typing import Optional


class IssueMirrorError(Exception):
    """Base class for all service errors."""


class AuthenticationError(IssueMirrorError):
    """Webhook signature is missing, malformed or does not match."""


class ValidationError(IssueMirrorError):
    """Inbound event payload is missing required fields or is not valid JSON."""


class UnsupportedEventError(IssueMirrorError):
    """Webhook event type we do not process."""

    def __init__(self, event_type: Optional[str]):
        self.event_type = event_type
        super().__init__(f"Unsupported event type: {event_type or '<missing>'}")


class RateLimitError(IssueMirrorError):
    """Sync requested inside the cooldown window of the previous attempt."""

    def __init__(self, retry_after: float):
        self.retry_after = max(0, math.ceil(retry_after))
        super().__init__(f"Please wait {self.retry_after} seconds before syncing again.")


class UpstreamError(IssueMirrorError):
    """Fetching from GitHub failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class StoreError(IssueMirrorError):
    """A write or read against the durable store failed."""


class OperationCancelled(IssueMirrorError):
    """The cancellation token of the current operation fired."""


class RepositoryNotFound(IssueMirrorError):
    """Sync requested for a repository that is not registered."""
