"""Tests for mbox entry framing and the compressed archive writer."""

from __future__ import annotations

import base64
import gzip
import re
from datetime import UTC
from pathlib import Path
from queue import Queue
from typing import Any

import pytest

from gmail_mbox.core.interfaces import ArchiveFormatError, MessageFetchError
from gmail_mbox.core.models import MessageRecord
from gmail_mbox.export import WORKER_DONE, ArchiveSink, MboxArchiveWriter
from gmail_mbox.export.writer import (
    decode_raw,
    format_entry,
    format_envelope_date,
    split_lines,
)

# 2006-01-02 15:04:05 UTC
REFERENCE_MILLIS = "1136214245000"

SAMPLE_MESSAGE = (
    b"From: sender@example.com\r\n"
    b"Subject: From the team\r\n"
    b"\r\n"
    b"Hello\r\n"
    b"From the start of a line\r\n"
    b">From an earlier quote\r\n"
    b">>>From deep\r\n"
    b"not From here\r\n"
)


def encode(payload: bytes) -> str:
    return base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=")


def make_record(message_id: str, payload: bytes = SAMPLE_MESSAGE) -> MessageRecord:
    return MessageRecord(
        id=message_id, raw=encode(payload), internal_date=REFERENCE_MILLIS
    )


def read_entries(path: Path) -> list[bytes]:
    with gzip.open(path, "rb") as handle:
        content = handle.read()
    return [entry for entry in re.split(rb"(?m)^From - ", content) if entry]


def test_format_envelope_date_uses_ansi_c_layout() -> None:
    assert format_envelope_date(REFERENCE_MILLIS, UTC) == "Mon Jan  2 15:04:05 2006"
    # 2006-01-12 15:04:05 UTC, two digit day keeps single spacing
    assert format_envelope_date("1137078245000", UTC) == "Thu Jan 12 15:04:05 2006"


@pytest.mark.parametrize("value", [None, "", "yesterday", "12.5"])
def test_format_envelope_date_rejects_malformed_values(value: str | None) -> None:
    with pytest.raises(ArchiveFormatError):
        format_envelope_date(value, UTC)


def test_decode_raw_accepts_unpadded_urlsafe_content() -> None:
    payload = b"\xfb\xff subject?"
    assert decode_raw(encode(payload)) == payload


@pytest.mark.parametrize("value", [None, "@@@@", "abcde", "ab+/", "ab/c"])
def test_decode_raw_rejects_malformed_payloads(value: str | None) -> None:
    with pytest.raises(ArchiveFormatError):
        decode_raw(value)


def test_split_lines_normalises_terminators() -> None:
    assert split_lines(b"a\r\nb\nc") == [b"a", b"b", b"c"]
    assert split_lines(b"a\n\n") == [b"a", b""]
    assert split_lines(b"") == []


def test_format_entry_escapes_body_from_lines_only() -> None:
    entry = format_entry(make_record("m1"), UTC)

    assert entry == (
        b"From - Mon Jan  2 15:04:05 2006\n"
        b"From: sender@example.com\n"
        b"Subject: From the team\n"
        b"\n"
        b"Hello\n"
        b">From the start of a line\n"
        b">>From an earlier quote\n"
        b">>>>From deep\n"
        b"not From here\n"
        b"\n"
    )


def test_format_entry_without_body_keeps_every_line_verbatim() -> None:
    entry = format_entry(make_record("m1", b"From: a@example.com\nX-From: b"), UTC)

    assert entry == (
        b"From - Mon Jan  2 15:04:05 2006\n"
        b"From: a@example.com\n"
        b"X-From: b\n"
        b"\n"
    )


def test_writer_separates_entries_with_single_blank_line(tmp_path: Path) -> None:
    path = tmp_path / "messages.mbox.gz"
    first = make_record("m1", b"Subject: one\n\nbody one\n")
    second = make_record("m2", b"Subject: two\n\nbody two\n")

    with MboxArchiveWriter(path, tz=UTC) as writer:
        writer.write(first)
        writer.write(second)
        assert writer.count == 2

    with gzip.open(path, "rb") as handle:
        content = handle.read()
    assert content == format_entry(first, UTC) + b"\n" + format_entry(second, UTC)
    assert content.count(b"\n\n\nFrom - ") == 1
    assert len(read_entries(path)) == 2


def test_writer_finalises_archive_when_a_record_is_malformed(tmp_path: Path) -> None:
    path = tmp_path / "messages.mbox.gz"
    broken = MessageRecord(id="bad", raw="!!!", internal_date=REFERENCE_MILLIS)

    with pytest.raises(ArchiveFormatError):
        with MboxArchiveWriter(path, tz=UTC) as writer:
            writer.write(make_record("m1"))
            writer.write(broken)

    assert len(read_entries(path)) == 1


def test_writer_rejects_writes_when_closed(tmp_path: Path) -> None:
    writer = MboxArchiveWriter(tmp_path / "out.mbox.gz")

    with pytest.raises(RuntimeError):
        writer.write(make_record("m1"))


def _seed(items: list[Any]) -> Queue[Any]:
    results: Queue[Any] = Queue()
    for item in items:
        results.put(item)
    return results


def test_archive_sink_counts_tokens_and_reports_progress(tmp_path: Path) -> None:
    messages: list[str] = []
    results = _seed(
        [
            make_record("m1"),
            WORKER_DONE,
            make_record("m2"),
            make_record("m3"),
            make_record("m4"),
            WORKER_DONE,
        ]
    )

    with MboxArchiveWriter(tmp_path / "out.mbox.gz", tz=UTC) as writer:
        sink = ArchiveSink(
            writer,
            num_workers=2,
            total=4,
            progress_interval=2,
            progress_callback=messages.append,
        )
        progress = sink.consume(results)

    assert progress.archived == 4
    assert progress.closed_workers == 2
    assert results.empty()
    assert messages == ["2 messages written => 50%", "4 messages written => 100%"]


def test_archive_sink_skips_records_that_could_not_be_fetched(tmp_path: Path) -> None:
    path = tmp_path / "out.mbox.gz"
    failed = MessageRecord(id="m2", fetch_error="HTTP 500")
    results = _seed([make_record("m1"), failed, WORKER_DONE])

    with MboxArchiveWriter(path, tz=UTC) as writer:
        progress = ArchiveSink(writer, num_workers=1, total=2).consume(results)

    assert progress.archived == 1
    assert progress.skipped == ["m2"]
    assert len(read_entries(path)) == 1


def test_archive_sink_aborts_on_unfetched_record_when_configured(
    tmp_path: Path,
) -> None:
    failed = MessageRecord(id="m2", fetch_error="HTTP 500")
    results = _seed([failed, WORKER_DONE])

    with MboxArchiveWriter(tmp_path / "out.mbox.gz", tz=UTC) as writer:
        sink = ArchiveSink(
            writer, num_workers=1, total=1, on_fetch_exhausted="abort"
        )
        with pytest.raises(MessageFetchError):
            sink.consume(results)
