"""
Tests for the command line entry point.

How to run:
    poetry run pytest tests/test_cli.py
"""

import asyncio

import pytest

from lyricdrop import cli
from lyricdrop.client import APIClient
from lyricdrop.pipeline import HTTPStatusError, PipelineStage, PipelineState


def test_parser_run_command():
    args = cli.build_parser().parse_args(["run", "song.mp3", "--language", "es", "--service", "falai"])

    assert args.command == "run"
    assert args.file == "song.mp3"
    assert args.language == "es"
    assert args.service == "falai"


def test_parser_rejects_unknown_service():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["run", "song.mp3", "--service", "spleeter"])


def test_missing_file_exits_with_error(tmp_path, capsys):
    assert cli.main(["run", str(tmp_path / "missing.mp3")]) == 1
    assert "not found" in capsys.readouterr().err


def test_success_prints_lyrics(monkeypatch, capsys):
    async def fake_run(path, api_url, language, service):
        assert (language, service) == ("fr", "demucs")
        return PipelineState(stage=PipelineStage.SUCCEEDED, final_text="La la la")

    monkeypatch.setattr(cli, "run_pipeline", fake_run)

    assert cli.main(["run", "song.mp3", "--language", "fr", "--service", "demucs"]) == 0
    assert capsys.readouterr().out.strip() == "La la la"


def test_failure_reports_stage(monkeypatch, capsys):
    async def fake_run(path, api_url, language, service):
        return PipelineState(
            stage=PipelineStage.FAILED,
            failed_stage=PipelineStage.TRANSCRIBING,
            error="POST /api/audio-to-text returned HTTP 500",
        )

    monkeypatch.setattr(cli, "run_pipeline", fake_run)

    assert cli.main(["run", "song.mp3"]) == 1
    assert "Failed while transcribing" in capsys.readouterr().err


def test_status_printer_skips_duplicates(capsys):
    printer = cli.StatusPrinter()
    state = PipelineState(stage=PipelineStage.UPLOADING)

    printer(state)
    printer(state)

    assert capsys.readouterr().err.count("[uploading]") == 1


GEMINI_ANSWER = """Here are the lyrics:
[00:01.5] First line
[00:04.250] Second line
[01:02] Third line
"""


def test_gemini_mode_prints_timed_lines(monkeypatch, capsys):
    async def fake_gemini(path, api_url, language):
        assert language == "it"
        return GEMINI_ANSWER

    monkeypatch.setattr(cli, "run_gemini", fake_gemini)

    assert cli.main(["run", "song.mp3", "--mode", "gemini", "--language", "it", "--at", "5"]) == 0
    assert capsys.readouterr().out.splitlines() == [
        "  [00:01.500] First line",
        "> [00:04.250] Second line",
        "  [01:02.000] Third line",
    ]


def test_gemini_mode_without_timestamps_prints_raw_text(monkeypatch, capsys):
    async def fake_gemini(path, api_url, language):
        return "La la la\n"

    monkeypatch.setattr(cli, "run_gemini", fake_gemini)

    assert cli.main(["run", "song.mp3", "--mode", "gemini"]) == 0
    assert capsys.readouterr().out.strip() == "La la la"


def test_gemini_mode_reports_api_failure(monkeypatch, capsys):
    async def fake_gemini(path, api_url, language):
        raise HTTPStatusError("POST /api/gemini returned HTTP 500", status_code=500)

    monkeypatch.setattr(cli, "run_gemini", fake_gemini)

    assert cli.main(["run", "song.mp3", "--mode", "gemini"]) == 1
    assert "Failed while transcribing" in capsys.readouterr().err


def test_gemini_mode_uploads_file(monkeypatch, tmp_path):
    path = tmp_path / "song.mp3"
    path.write_bytes(b"ID3" + b"\x00" * 16)
    sent = []

    def fake_transcribe(self, file, language="en"):
        sent.append((self.base_url, file.name, file.mime_type, language))
        return "[00:00.000] La"

    monkeypatch.setattr(APIClient, "transcribe_with_gemini", fake_transcribe)

    text = asyncio.run(cli.run_gemini(str(path), "http://api.test", "en"))

    assert text == "[00:00.000] La"
    assert sent == [("http://api.test", "song.mp3", "audio/mpeg", "en")]
