"""Gmail REST API adapter providing message listing and retrieval."""

from __future__ import annotations

import json
import logging
from types import TracebackType
from typing import Any

import httpx

from ..core.config import GmailSettings
from ..core.interfaces import MessageStore, MessageStoreError
from ..core.models import MessagePage, MessageRecord

LOGGER = logging.getLogger(__name__)


class GmailApiError(MessageStoreError):
    """Wrap HTTP and decoding failures from the Gmail API."""


class GmailClient(MessageStore):
    """Thin wrapper around ``httpx.Client`` for the Gmail users.messages API."""

    def __init__(
        self,
        settings: GmailSettings,
        token: str,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialise the client with API settings and a bearer token."""
        self._settings = settings
        self._client = httpx.Client(
            base_url=settings.api_base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> GmailClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure the HTTP connection pool is released on context exit."""
        self.close()

    # Public API ---------------------------------------------------------------
    def get_message_count(self) -> int:
        """Return ``messagesTotal`` from the user's profile."""
        profile = self._get_json("profile")
        try:
            return int(profile["messagesTotal"])
        except (KeyError, TypeError, ValueError) as exc:
            raise GmailApiError("Profile response missing 'messagesTotal'") from exc

    def list_messages(self, page_token: str | None, page_size: int) -> MessagePage:
        """Return one page of message ids, excluding spam and trash."""
        params: dict[str, str | int] = {
            "includeSpamTrash": "false",
            "maxResults": page_size,
        }
        if page_token:
            params["pageToken"] = page_token
        data = self._get_json("messages", params=params)
        messages = data.get("messages") or []
        try:
            message_ids = tuple(str(item["id"]) for item in messages)
        except (KeyError, TypeError) as exc:
            raise GmailApiError("Message list entry missing 'id'") from exc
        return MessagePage(
            message_ids=message_ids,
            next_page_token=data.get("nextPageToken") or None,
            result_size_estimate=int(data.get("resultSizeEstimate") or 0),
        )

    def fetch_message(self, record: MessageRecord) -> MessageRecord:
        """Fill ``record`` with the RAW representation of the message."""
        data = self._get_json(f"messages/{record.id}", params={"format": "raw"})
        raw = data.get("raw")
        if not isinstance(raw, str):
            raise GmailApiError(f"Message {record.id} response missing 'raw'")
        record.raw = raw
        record.internal_date = data.get("internalDate")
        record.thread_id = data.get("threadId")
        size_estimate = data.get("sizeEstimate")
        try:
            record.size_estimate = (
                int(size_estimate) if size_estimate is not None else None
            )
        except (TypeError, ValueError) as exc:
            raise GmailApiError(
                f"Message {record.id} has invalid sizeEstimate"
            ) from exc
        return record

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    # Internal helpers ---------------------------------------------------------
    def _get_json(
        self, path: str, params: dict[str, str | int] | None = None
    ) -> dict[str, Any]:
        try:
            response = self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise GmailApiError(f"Request to {path} failed: {exc}") from exc
        if response.status_code != httpx.codes.OK:
            raise GmailApiError(
                f"Request to {path} returned HTTP status {response.status_code}"
            )
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise GmailApiError(f"Request to {path} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise GmailApiError(f"Request to {path} returned unexpected JSON")
        return data


__all__ = ["GmailApiError", "GmailClient"]
