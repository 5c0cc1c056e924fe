"""Enumerate message ids from the remote index and hand them to workers."""

from __future__ import annotations

import logging
import time
from typing import Callable

from ..core.interfaces import ListingError, MessageStore, MessageStoreError
from ..core.models import MessageRecord
from .handoff import Handoff, HandoffClosed

LOGGER = logging.getLogger(__name__)


class MessageLister:
    """Paginate the message index, pushing one record per id downstream."""

    def __init__(
        self,
        store: MessageStore,
        handoff: Handoff[MessageRecord],
        *,
        page_size: int = 500,
        pacing_seconds: float = 0.02,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self._store = store
        self._handoff = handoff
        self._page_size = page_size
        self._pacing_seconds = pacing_seconds
        self._sleep = sleep

    def run(self) -> int:
        """List every message id and return how many were handed off.

        The hand-off is closed on every exit path so workers can finish.
        Listing failures are not retried and raise :class:`ListingError`.
        """
        listed = 0
        page_token: str | None = None
        try:
            while True:
                try:
                    page = self._store.list_messages(page_token, self._page_size)
                except MessageStoreError as exc:
                    raise ListingError(
                        f"Failed to list messages after {listed} ids: {exc}"
                    ) from exc
                LOGGER.debug(
                    "Listed page of %d ids (next token %s)",
                    len(page.message_ids),
                    page.next_page_token,
                )
                for message_id in page.message_ids:
                    self._handoff.put(MessageRecord(id=message_id))
                    listed += 1
                    if self._pacing_seconds:
                        self._sleep(self._pacing_seconds)
                if not page.next_page_token:
                    break
                page_token = page.next_page_token
        except HandoffClosed:
            LOGGER.debug("Hand-off aborted; stopping listing after %d ids", listed)
        finally:
            self._handoff.close()

        LOGGER.info("Listing completed: %d message ids", listed)
        return listed


__all__ = ["MessageLister"]
