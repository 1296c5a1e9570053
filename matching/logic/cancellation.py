"""
Cooperative cancellation for matching batches.
"""

import threading

from .errors import MatchingCancelled


class CancellationToken:
    """Shared flag checked between pair evaluations and before commit."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise MatchingCancelled("Matching batch was cancelled")
