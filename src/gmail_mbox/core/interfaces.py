"""Protocol interfaces and error types shared between components."""

from __future__ import annotations

from typing import Protocol

from .models import MessagePage, MessageRecord


class MessageStoreError(RuntimeError):
    """Raised when the remote message store cannot serve a request."""


class ExportError(RuntimeError):
    """Base class for errors that abort an export run."""


class ListingError(ExportError):
    """Raised when the message index cannot be enumerated."""


class ArchiveFormatError(ExportError):
    """Raised when a fetched record cannot be serialised into the archive."""


class MessageFetchError(ExportError):
    """Raised when a message could not be fetched and skipping is disabled."""


class MessageStore(Protocol):
    """Abstraction over a remote message store such as the Gmail API."""

    def get_message_count(self) -> int:
        """Return the total number of messages in the account."""
        raise NotImplementedError

    def list_messages(self, page_token: str | None, page_size: int) -> MessagePage:
        """Return one page of message ids starting at ``page_token``."""
        raise NotImplementedError

    def fetch_message(self, record: MessageRecord) -> MessageRecord:
        """Populate ``record`` with its raw content and metadata."""
        raise NotImplementedError


__all__ = [
    "ArchiveFormatError",
    "ExportError",
    "ListingError",
    "MessageFetchError",
    "MessageStore",
    "MessageStoreError",
]
