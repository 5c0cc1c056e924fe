"""Wire the lister, fetch workers and archive sink into one export run."""

from __future__ import annotations

import logging
import threading
import time
from datetime import UTC
from queue import Empty, Queue
from typing import Any, Callable

from ..core.config import OutputSettings, PipelineSettings
from ..core.interfaces import ExportError, ListingError, MessageStore
from ..core.models import ExportReport, MessageRecord
from .handoff import Handoff
from .lister import MessageLister
from .workers import FetchWorker
from .writer import ArchiveSink, MboxArchiveWriter

LOGGER = logging.getLogger(__name__)


class ExportPipeline:
    """Concurrent lister / worker pool / archive sink pipeline.

    The lister and the fetch workers run on daemon threads. The archive sink
    runs on the calling thread, so errors raised while archiving propagate
    directly out of :meth:`run`. A listing failure lets the workers drain,
    closes the archive and is raised once the sink has finished.
    """

    def __init__(
        self,
        store: MessageStore,
        settings: PipelineSettings,
        output: OutputSettings,
        *,
        progress_callback: Callable[[str], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._settings = settings
        self._output = output
        self._progress_callback = progress_callback
        self._sleep = sleep
        self._listing_error: ListingError | None = None

    def run(self, total_messages: int) -> ExportReport:
        """Export every listed message and return a summary of the run."""
        settings = self._settings
        start = time.monotonic()
        self._listing_error = None
        handoff: Handoff[MessageRecord] = Handoff()
        results: Queue[Any] = Queue(maxsize=settings.result_queue_size)
        LOGGER.info(
            "Exporting %d messages to %s with %d workers",
            total_messages,
            self._output.path,
            settings.num_workers,
        )

        with MboxArchiveWriter(
            self._output.path,
            compress_level=self._output.compress_level,
            tz=UTC if self._output.use_utc else None,
        ) as writer:
            sink = ArchiveSink(
                writer,
                num_workers=settings.num_workers,
                total=total_messages,
                progress_interval=settings.progress_interval,
                on_fetch_exhausted=settings.on_fetch_exhausted,
                progress_callback=self._progress_callback,
            )
            workers = [
                FetchWorker(
                    index,
                    self._store,
                    handoff,
                    results,
                    max_attempts=settings.max_attempts,
                    retry_delay=settings.retry_delay_seconds,
                    sleep=self._sleep,
                )
                for index in range(settings.num_workers)
            ]
            lister = MessageLister(
                self._store,
                handoff,
                page_size=settings.page_size,
                pacing_seconds=settings.list_pacing_seconds,
                sleep=self._sleep,
            )
            threads = [
                threading.Thread(
                    target=worker.run, name=f"fetch-worker-{worker.index}", daemon=True
                )
                for worker in workers
            ]
            threads.append(
                threading.Thread(
                    target=self._list, args=(lister,), name="lister", daemon=True
                )
            )
            for thread in threads:
                thread.start()

            try:
                progress = sink.consume(results)
            except BaseException:
                handoff.abort()
                _drain_until_stopped(results, threads)
                raise
            # Releases the lister if every worker stopped early.
            handoff.abort()

        for thread in threads:
            thread.join()

        if self._listing_error is not None:
            raise self._listing_error
        for worker in workers:
            if worker.error is not None:
                raise ExportError(
                    f"Fetch worker #{worker.index} failed: {worker.error}"
                ) from worker.error

        elapsed = time.monotonic() - start
        summary = f"{progress.archived} messages in {elapsed:.1f}s"
        if progress.skipped:
            summary += f" ({len(progress.skipped)} skipped)"
        LOGGER.info(summary)
        if self._progress_callback:
            self._progress_callback(summary)
        return ExportReport(
            archived=progress.archived,
            skipped=tuple(progress.skipped),
            elapsed_seconds=elapsed,
            output_path=self._output.path,
        )

    def _list(self, lister: MessageLister) -> None:
        try:
            lister.run()
        except ListingError as exc:
            LOGGER.error("Listing failed: %s", exc)
            self._listing_error = exc
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error("Lister stopped unexpectedly: %s", exc, exc_info=True)
            error = ListingError(f"Lister stopped unexpectedly: {exc}")
            error.__cause__ = exc
            self._listing_error = error


def _drain_until_stopped(results: Queue[Any], threads: list[threading.Thread]) -> None:
    """Discard results so blocked workers can emit their tokens and exit."""
    while any(thread.is_alive() for thread in threads):
        try:
            results.get(timeout=0.05)
        except Empty:
            continue


__all__ = ["ExportPipeline"]
