"""Zero-capacity rendezvous channel between the lister and fetch workers."""

from __future__ import annotations

import threading
from typing import Generic, TypeVar

T = TypeVar("T")


class HandoffClosed(RuntimeError):
    """Raised when putting into a closed or aborted hand-off."""


class Handoff(Generic[T]):
    """Single-slot channel where ``put`` blocks until a consumer takes the item.

    The producer can be at most one item ahead of whichever consumer accepts
    next, so listing speed is throttled to fetch speed without buffering.
    ``get`` returns ``None`` once the channel is closed and the slot is empty.
    """

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._item: T | None = None
        self._occupied = False
        self._offered = 0
        self._taken = 0
        self._closed = False
        self._aborted = False

    def put(self, item: T) -> None:
        """Offer ``item`` and wait until exactly one consumer has taken it."""
        with self._condition:
            while self._occupied and not self._closed:
                self._condition.wait()
            if self._closed:
                raise HandoffClosed("Hand-off is closed")
            self._item = item
            self._occupied = True
            self._offered += 1
            ticket = self._offered
            self._condition.notify_all()
            while self._taken < ticket and not self._aborted:
                self._condition.wait()
            if self._taken < ticket:
                raise HandoffClosed("Hand-off was aborted before delivery")

    def get(self) -> T | None:
        """Take the next item, or return ``None`` when no more will arrive."""
        with self._condition:
            while not self._occupied and not self._closed:
                self._condition.wait()
            if not self._occupied:
                return None
            item = self._item
            self._item = None
            self._occupied = False
            self._taken += 1
            self._condition.notify_all()
            return item

    def close(self) -> None:
        """Signal that no further items will be offered."""
        with self._condition:
            self._closed = True
            self._condition.notify_all()

    def abort(self) -> None:
        """Close the channel, dropping any pending item and waking the producer."""
        with self._condition:
            self._closed = True
            self._aborted = True
            self._item = None
            self._occupied = False
            self._condition.notify_all()


__all__ = ["Handoff", "HandoffClosed"]
