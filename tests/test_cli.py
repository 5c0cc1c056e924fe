"""Tests for the command-line entry point."""

from __future__ import annotations

from pathlib import Path

import pytest

from gmail_mbox import cli
from gmail_mbox.core.config import AppSettings, GmailSettings
from gmail_mbox.core.interfaces import ListingError


def test_arguments_override_settings() -> None:
    args = cli.build_parser().parse_args(
        [
            "export",
            "-o",
            "out.mbox.gz",
            "--workers",
            "2",
            "--on-fetch-exhausted",
            "abort",
        ]
    )

    settings = cli.apply_arguments(args, AppSettings())

    assert settings.output.path == Path("out.mbox.gz")
    assert settings.pipeline.num_workers == 2
    assert settings.pipeline.on_fetch_exhausted == "abort"


def test_arguments_without_overrides_keep_settings() -> None:
    args = cli.build_parser().parse_args([])
    settings = AppSettings()

    assert args.command == "export"
    assert cli.apply_arguments(args, settings) is settings


def test_info_command_prints_configuration(capsys: pytest.CaptureFixture[str]) -> None:
    args = cli.build_parser().parse_args(["info"])

    assert cli.execute(args, AppSettings()) == 0
    assert "Workers: 8" in capsys.readouterr().out


def test_export_failure_returns_error_status(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    class FailingPipeline:
        def __init__(self, *args: object, **kwargs: object) -> None:
            del args, kwargs

        def run(self, total_messages: int) -> None:
            raise ListingError(f"listing broke after {total_messages}")

    class StubClient:
        def __init__(self, settings: GmailSettings, token: str) -> None:
            assert token == "preset-token"

        def __enter__(self) -> "StubClient":
            return self

        def __exit__(self, *exc_info: object) -> None:
            return None

        def get_message_count(self) -> int:
            return 3

    monkeypatch.setattr(cli, "GmailClient", StubClient)
    monkeypatch.setattr(cli, "ExportPipeline", FailingPipeline)
    settings = AppSettings(gmail=GmailSettings(access_token="preset-token"))

    status = cli.execute(cli.build_parser().parse_args(["export"]), settings)

    assert status == 1
    assert "Export failed: listing broke after 3" in capsys.readouterr().out


@pytest.mark.parametrize("value", ["0", "-2", "many"])
def test_workers_argument_must_be_positive(value: str) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.build_parser().parse_args(["export", "--workers", value])

    assert excinfo.value.code == 2
