"""Command-line entry point for gmail-mbox."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from gmail_mbox.core import (
    AppSettings,
    PipelineSettings,
    configure_logging,
    load_app_settings,
)
from gmail_mbox.core.interfaces import ExportError, MessageStoreError
from gmail_mbox.export import ExportPipeline
from gmail_mbox.transport import (
    AuthorizationError,
    GmailClient,
    LocalRedirectAuthenticator,
)

LOGGER = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    """argparse type accepting integers greater than zero."""
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Export a Gmail mailbox into a gzip-compressed mbox file"
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=Path(".env"),
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="export",
        choices=["info", "export"],
        help="Operation to execute.",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Destination archive (default: messages.mbox.gz).",
    )
    parser.add_argument(
        "--workers",
        type=_positive_int,
        default=None,
        help="Number of parallel fetch workers.",
    )
    parser.add_argument(
        "--on-fetch-exhausted",
        choices=["skip", "abort"],
        default=None,
        help="What to do with a message that fails every fetch attempt.",
    )
    return parser


def apply_arguments(args: argparse.Namespace, settings: AppSettings) -> AppSettings:
    """Return ``settings`` with command-line overrides applied."""
    pipeline_updates: dict[str, object] = {}
    if args.workers is not None:
        pipeline_updates["num_workers"] = args.workers
    if args.on_fetch_exhausted is not None:
        pipeline_updates["on_fetch_exhausted"] = args.on_fetch_exhausted
    updates: dict[str, object] = {}
    if pipeline_updates:
        updates["pipeline"] = PipelineSettings.model_validate(
            {**settings.pipeline.model_dump(), **pipeline_updates}
        )
    if args.output is not None:
        updates["output"] = settings.output.model_copy(update={"path": args.output})
    return settings.model_copy(update=updates) if updates else settings


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return the exit status."""
    if args.command == "info":
        print(f"Gmail API: {settings.gmail.api_base_url}")
        print(f"Output path: {settings.output.path}")
        print(f"Workers: {settings.pipeline.num_workers}")
        print(f"On fetch exhausted: {settings.pipeline.on_fetch_exhausted}")
        return 0
    return _run_export(settings)


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    try:
        settings = apply_arguments(args, load_app_settings(env_file=args.env_file))
    except ValidationError as exc:
        parser.error(f"invalid configuration: {exc}")
    configure_logging(settings.logging)
    sys.exit(execute(args, settings))


def _obtain_token(settings: AppSettings) -> str:
    """Return a bearer token, running the interactive flow when needed."""
    if settings.gmail.access_token:
        return settings.gmail.access_token
    with LocalRedirectAuthenticator(settings.gmail) as authenticator:
        print("Open the following URL in your browser to authorize access:")
        print(authenticator.authorization_url())
        return authenticator.authenticate()


def _run_export(settings: AppSettings) -> int:
    """Authorize, read the message total and run the export pipeline."""
    try:
        token = _obtain_token(settings)
        with GmailClient(settings.gmail, token) as client:
            total = client.get_message_count()
            print(f"Total number of messages: {total}")
            pipeline = ExportPipeline(
                client,
                settings.pipeline,
                settings.output,
                progress_callback=print,
            )
            report = pipeline.run(total)
    except (AuthorizationError, MessageStoreError, ExportError) as exc:
        LOGGER.error("Export failed: %s", exc)
        print(f"Export failed: {exc}")
        return 1

    print(f"Archive written to {report.output_path}")
    if report.skipped:
        print(f"Skipped {len(report.skipped)} message(s): {', '.join(report.skipped)}")
    return 0


if __name__ == "__main__":
    main()
