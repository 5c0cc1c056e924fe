"""Core utilities for configuration, logging, and shared models."""

from .config import AppSettings, PipelineSettings, load_app_settings
from .logging import configure_logging

__all__ = [
    "AppSettings",
    "PipelineSettings",
    "configure_logging",
    "load_app_settings",
]
