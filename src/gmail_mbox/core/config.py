"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field


class GmailSettings(BaseModel):
    """Settings controlling access to the Gmail REST API."""

    api_base_url: str = Field(
        default="https://gmail.googleapis.com/gmail/v1/users/me/",
        description="Base URL for the authenticated user's Gmail resources",
    )
    auth_url: str = Field(
        default="https://accounts.google.com/o/oauth2/v2/auth",
        description="OAuth 2.0 authorization endpoint",
    )
    token_url: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="OAuth 2.0 token exchange endpoint",
    )
    scope: str = Field(
        default="https://www.googleapis.com/auth/gmail.readonly",
        description="OAuth scope requested during authorization",
    )
    client_id: str | None = Field(default=None, description="OAuth client ID")
    client_secret: str | None = Field(
        default=None, description="OAuth client secret"
    )
    access_token: str | None = Field(
        default=None,
        description="Pre-obtained bearer token; skips the interactive flow",
    )
    timeout_seconds: float = Field(
        default=30.0, gt=0, description="Timeout for each API request"
    )


class PipelineSettings(BaseModel):
    """Tunables for the concurrent export pipeline."""

    num_workers: int = Field(default=8, ge=1, description="Parallel fetch workers")
    page_size: int = Field(
        default=500, ge=1, le=500, description="Message ids requested per page"
    )
    max_attempts: int = Field(
        default=5, ge=1, description="Fetch attempts per message before giving up"
    )
    retry_delay_seconds: float = Field(
        default=0.1, ge=0.0, description="Delay between failed fetch attempts"
    )
    list_pacing_seconds: float = Field(
        default=0.02,
        ge=0.0,
        description="Delay after each listed id to respect API rate limits",
    )
    result_queue_size: int = Field(
        default=100, ge=1, description="Capacity of the worker to writer queue"
    )
    progress_interval: int = Field(
        default=500, ge=1, description="Archived messages between progress lines"
    )
    on_fetch_exhausted: Literal["skip", "abort"] = Field(
        default="skip",
        description="Whether a message that failed every attempt is skipped "
        "or aborts the export",
    )


class OutputSettings(BaseModel):
    """Settings for the produced archive file."""

    path: Path = Field(
        default=Path("./messages.mbox.gz"), description="Destination archive path"
    )
    compress_level: int = Field(
        default=9, ge=0, le=9, description="gzip compression level"
    )
    use_utc: bool = Field(
        default=False,
        description="Render envelope dates in UTC instead of local time",
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle structured logging format"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    gmail: GmailSettings = Field(default_factory=GmailSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "GMAIL_MBOX_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, include_environment: bool
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            normalized_value = None
        elif isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "GmailSettings",
    "LoggingSettings",
    "OutputSettings",
    "PipelineSettings",
    "load_app_settings",
]
