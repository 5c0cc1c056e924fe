"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class MessageRecord:
    """A message being exported; populated in place by one fetch worker."""

    id: str
    thread_id: str | None = None
    raw: str | None = None
    internal_date: str | None = None
    size_estimate: int | None = None
    fetch_error: str | None = None


@dataclass(slots=True)
class MessagePage:
    """One page of the remote message index."""

    message_ids: tuple[str, ...]
    next_page_token: str | None
    result_size_estimate: int = 0


@dataclass(slots=True)
class ExportReport:
    """Outcome summary for an export run."""

    archived: int
    skipped: tuple[str, ...]
    elapsed_seconds: float
    output_path: Path


@dataclass(slots=True)
class ArchiveProgress:
    """Running counters owned by the archive sink."""

    total: int
    archived: int = 0
    closed_workers: int = 0
    skipped: list[str] = field(default_factory=list)

    @property
    def percent(self) -> int:
        """Integer percentage of ``total`` archived so far."""
        if self.total <= 0:
            return 100
        return self.archived * 100 // self.total


__all__ = [
    "ArchiveProgress",
    "ExportReport",
    "MessagePage",
    "MessageRecord",
]
