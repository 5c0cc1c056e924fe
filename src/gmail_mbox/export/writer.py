"""Serialise fetched messages into a gzip-compressed mbox archive."""

from __future__ import annotations

import base64
import binascii
import gzip
import io
import logging
import re
from contextlib import ExitStack
from datetime import datetime, tzinfo
from pathlib import Path
from queue import Queue
from types import TracebackType
from typing import Any, Callable, Literal

from ..core.interfaces import ArchiveFormatError, MessageFetchError
from ..core.models import ArchiveProgress, MessageRecord
from .workers import WORKER_DONE

LOGGER = logging.getLogger(__name__)

BUFFER_SIZE = 1 << 20

_FROM_LINE = re.compile(rb"^>*From")

# Fixed English names so the envelope line does not depend on the locale.
_WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)


def format_envelope_date(internal_date: str | None, tz: tzinfo | None = None) -> str:
    """Render an epoch-millisecond timestamp as an ANSI C ``asctime`` string.

    ``tz`` of ``None`` uses the local timezone. The day of month is padded
    with a space, e.g. ``Mon Jan  2 15:04:05 2006``.
    """
    try:
        millis = int(internal_date)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ArchiveFormatError(f"Invalid internal date {internal_date!r}") from exc
    try:
        moment = datetime.fromtimestamp(millis // 1000, tz=tz)
    except (OverflowError, OSError, ValueError) as exc:
        raise ArchiveFormatError(f"Internal date {millis} out of range") from exc
    return (
        f"{_WEEKDAYS[moment.weekday()]} {_MONTHS[moment.month - 1]} "
        f"{moment.day:2d} {moment:%H:%M:%S} {moment.year}"
    )


def decode_raw(raw: str | None) -> bytes:
    """Decode URL-safe base64 content, tolerating missing padding."""
    if raw is None:
        raise ArchiveFormatError("Message has no raw content")
    if "+" in raw or "/" in raw:
        raise ArchiveFormatError("Invalid base64 payload: not URL-safe")
    padded = raw + "=" * (-len(raw) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ArchiveFormatError(f"Invalid base64 payload: {exc}") from exc


def split_lines(payload: bytes) -> list[bytes]:
    """Split on ``\\n`` dropping one trailing ``\\r`` per line."""
    lines = payload.split(b"\n")
    if lines[-1] == b"":
        lines.pop()
    return [line[:-1] if line.endswith(b"\r") else line for line in lines]


def format_entry(record: MessageRecord, tz: tzinfo | None = None) -> bytes:
    """Return the mbox entry for ``record`` without the leading separator.

    Header lines are copied verbatim; body lines that look like an envelope
    (``^>*From``) gain one extra ``>``. The entry ends with a blank line.
    """
    envelope = f"From - {format_envelope_date(record.internal_date, tz)}\n"
    parts = [envelope.encode("ascii")]
    in_header = True
    for line in split_lines(decode_raw(record.raw)):
        if in_header:
            if not line:
                in_header = False
        elif _FROM_LINE.match(line):
            line = b">" + line
        parts.append(line)
        parts.append(b"\n")
    parts.append(b"\n")
    return b"".join(parts)


class MboxArchiveWriter:
    """Streaming writer over file, buffer and gzip layers."""

    def __init__(
        self,
        path: Path,
        *,
        compress_level: int = 9,
        tz: tzinfo | None = None,
    ) -> None:
        self.path = Path(path)
        self._compress_level = compress_level
        self._tz = tz
        self._stack: ExitStack | None = None
        self._stream: gzip.GzipFile | None = None
        self.count = 0

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> MboxArchiveWriter:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Finalise the archive on every exit path."""
        self.close()

    # Public API ---------------------------------------------------------------
    def open(self) -> None:
        """Open the destination file and layer buffering and compression."""
        if self._stack is not None:
            return
        with ExitStack() as stack:
            raw = open(self.path, "wb", buffering=0)  # pylint: disable=consider-using-with
            stack.callback(_release, raw.close, "archive file")
            buffered = io.BufferedWriter(raw, buffer_size=BUFFER_SIZE)
            stack.callback(_release, buffered.close, "archive buffer")
            compressed = gzip.GzipFile(
                filename=self.path.name.removesuffix(".gz"),
                mode="wb",
                compresslevel=self._compress_level,
                fileobj=buffered,
            )
            stack.callback(_release, compressed.close, "gzip stream")
            self._stream = compressed
            self._stack = stack.pop_all()
        LOGGER.debug("Opened archive %s", self.path)

    def write(self, record: MessageRecord) -> None:
        """Append ``record`` as a new mbox entry."""
        if self._stream is None:
            raise RuntimeError("Archive writer is not open")
        entry = format_entry(record, self._tz)
        if self.count > 0:
            self._stream.write(b"\n")
        self._stream.write(entry)
        self.count += 1

    def close(self) -> None:
        """Close compression, buffer and file layers in that order."""
        if self._stack is None:
            return
        stack, self._stack = self._stack, None
        self._stream = None
        stack.close()
        LOGGER.debug("Closed archive %s after %d entries", self.path, self.count)


def _release(closer: Callable[[], None], label: str) -> None:
    try:
        closer()
    except OSError as exc:
        LOGGER.error("Error while closing %s: %s", label, exc)


class ArchiveSink:
    """Single consumer of the result queue; decides when the export is done."""

    def __init__(
        self,
        writer: MboxArchiveWriter,
        *,
        num_workers: int,
        total: int,
        progress_interval: int = 500,
        on_fetch_exhausted: Literal["skip", "abort"] = "skip",
        progress_callback: Callable[[str], None] | None = None,
    ) -> None:
        if num_workers <= 0:
            raise ValueError("num_workers must be positive")
        self._writer = writer
        self._num_workers = num_workers
        self._progress_interval = progress_interval
        self._on_fetch_exhausted = on_fetch_exhausted
        self._progress_callback = progress_callback
        self.progress = ArchiveProgress(total=total)

    def consume(self, results: Queue[Any]) -> ArchiveProgress:
        """Archive records until every worker has sent its completion token."""
        progress = self.progress
        while progress.closed_workers < self._num_workers:
            item = results.get()
            if item is WORKER_DONE:
                progress.closed_workers += 1
                LOGGER.debug(
                    "Worker finished (%d/%d)", progress.closed_workers, self._num_workers
                )
                continue
            self._archive(item)
        return progress

    def _archive(self, record: MessageRecord) -> None:
        progress = self.progress
        if record.fetch_error is not None:
            if self._on_fetch_exhausted == "abort":
                raise MessageFetchError(
                    f"Message {record.id} could not be fetched: {record.fetch_error}"
                )
            LOGGER.warning("Skipping message %s: %s", record.id, record.fetch_error)
            progress.skipped.append(record.id)
            return

        self._writer.write(record)
        progress.archived += 1
        if progress.archived % self._progress_interval == 0:
            self._report(
                f"{progress.archived} messages written => {progress.percent}%"
            )

    def _report(self, message: str) -> None:
        LOGGER.info(message)
        if self._progress_callback:
            self._progress_callback(message)


__all__ = [
    "ArchiveSink",
    "MboxArchiveWriter",
    "decode_raw",
    "format_entry",
    "format_envelope_date",
    "split_lines",
]
