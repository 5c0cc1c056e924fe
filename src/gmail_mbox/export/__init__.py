"""Concurrent retrieval and archival pipeline."""

from .handoff import Handoff, HandoffClosed
from .lister import MessageLister
from .pipeline import ExportPipeline
from .workers import WORKER_DONE, FetchWorker
from .writer import ArchiveSink, MboxArchiveWriter, format_entry

__all__ = [
    "ArchiveSink",
    "ExportPipeline",
    "FetchWorker",
    "Handoff",
    "HandoffClosed",
    "MboxArchiveWriter",
    "MessageLister",
    "WORKER_DONE",
    "format_entry",
]
