"""Fetch workers turning listed ids into fully populated records."""

from __future__ import annotations

import logging
import time
from queue import Queue
from typing import Any, Callable, Final

from ..core.interfaces import MessageStore, MessageStoreError
from ..core.models import MessageRecord
from .handoff import Handoff

LOGGER = logging.getLogger(__name__)


class _WorkerDone:
    """Completion token emitted once by every worker when it stops."""

    def __repr__(self) -> str:
        return "WORKER_DONE"


WORKER_DONE: Final = _WorkerDone()


class FetchWorker:
    """Pull records from the hand-off, fetch them with retry, forward results."""

    def __init__(
        self,
        index: int,
        store: MessageStore,
        handoff: Handoff[MessageRecord],
        results: Queue[Any],
        *,
        max_attempts: int = 5,
        retry_delay: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        self.index = index
        self._store = store
        self._handoff = handoff
        self._results = results
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._sleep = sleep
        self.fetched = 0
        self.error: Exception | None = None

    def run(self) -> None:
        """Process records until the hand-off closes, then emit one token."""
        try:
            while True:
                record = self._handoff.get()
                if record is None:
                    break
                self._fetch(record)
                self._results.put(record)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error(
                "Fetch worker #%d stopped unexpectedly: %s",
                self.index,
                exc,
                exc_info=True,
            )
            self.error = exc
        finally:
            self._results.put(WORKER_DONE)
        LOGGER.debug(
            "Fetch worker #%d finished after %d messages", self.index, self.fetched
        )

    def _fetch(self, record: MessageRecord) -> None:
        """Populate ``record``; on exhaustion mark it with the last error."""
        last_error: MessageStoreError | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                self._store.fetch_message(record)
            except MessageStoreError as exc:
                last_error = exc
                LOGGER.warning(
                    "Cannot download message %s (attempt %d/%d): %s",
                    record.id,
                    attempt,
                    self._max_attempts,
                    exc,
                )
                if attempt < self._max_attempts and self._retry_delay:
                    self._sleep(self._retry_delay)
                continue
            if attempt > 1:
                LOGGER.info(
                    "Message %s, worker #%d, %d retries",
                    record.id,
                    self.index,
                    attempt - 1,
                )
            record.fetch_error = None
            self.fetched += 1
            return

        record.fetch_error = str(last_error)
        LOGGER.error(
            "Giving up on message %s after %d attempts", record.id, self._max_attempts
        )


__all__ = ["FetchWorker", "WORKER_DONE"]
