"""Tests for logging utilities."""

from __future__ import annotations

import logging

from gmail_mbox.core.config import LoggingSettings
from gmail_mbox.core.logging import configure_logging


def test_configure_logging_sets_root_level() -> None:
    """configure_logging should set the root logger level according to settings."""

    settings = LoggingSettings(level="DEBUG", structured=False)
    configure_logging(settings)
    assert logging.getLogger().level == logging.DEBUG


def test_configure_logging_quiets_http_client() -> None:
    configure_logging(LoggingSettings(level="INFO", structured=True))
    assert logging.getLogger("httpx").level == logging.WARNING
