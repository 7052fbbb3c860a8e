# -*- coding: utf-8 -*-
"""Cooperative cancellation for translation jobs."""

import time
from typing import Optional


class CancelToken:
    """
    Flag polled by the batch engine at batch boundaries.

    A token may carry a deadline (monotonic seconds); once it passes, the
    token reads as cancelled. In-flight requests are never interrupted.
    """

    def __init__(self, timeout_s: Optional[float] = None):
        self._cancelled = False
        self.reason: Optional[str] = None
        self.deadline: Optional[float] = None
        if timeout_s is not None:
            self.deadline = time.monotonic() + timeout_s

    def cancel(self, reason: str = "Translation cancelled by user") -> None:
        if not self._cancelled:
            self._cancelled = True
            self.reason = reason

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        if self.deadline is not None and time.monotonic() >= self.deadline:
            self.cancel("Translation deadline exceeded")
            return True
        return False

    def reset(self) -> None:
        self._cancelled = False
        self.reason = None
        self.deadline = None
