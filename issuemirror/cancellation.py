"""Cancellation tokens threaded through sync and webhook call chains.

Services call :meth:`CancellationToken.raise_if_cancelled` before every
upstream fetch, store call and cache call, so a cancelled or expired token
stops the operation at the next I/O boundary instead of mid-write.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from issuemirror.errors import OperationCancelled


class CancellationToken:
    """Cooperative cancellation flag with an optional deadline."""

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._event = threading.Event()
        self._clock = clock
        self._deadline = clock() + timeout_seconds if timeout_seconds else None
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and self._clock() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        return False

    def raise_if_cancelled(self, step: str = "") -> None:
        if self.cancelled:
            where = f" before {step}" if step else ""
            raise OperationCancelled(f"Operation {self.reason}{where}")
