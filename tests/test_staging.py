"""
Tests for UploadStagingStore and its preview URLs.

How to run:
    poetry run pytest tests/test_staging.py
"""

import asyncio
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname

import pytest
from conftest import CountingPreviews, FakeClock, FakeLyricsClient

from lyricdrop.pipeline import (
    PipelineOrchestrator,
    PipelineStage,
    StatusPoller,
    TempFilePreviews,
    UploadedFile,
    UploadStagingStore,
)


def make_store(clock: FakeClock, client: FakeLyricsClient = None):
    client = client or FakeLyricsClient(clock=clock)
    poller = StatusPoller(client.get_job_status, clock=clock, sleep=clock.sleep)
    previews = CountingPreviews()
    store = UploadStagingStore(PipelineOrchestrator(client, poller=poller), previews=previews)
    return store, previews, client


def other_file(name: str) -> UploadedFile:
    return UploadedFile(data=b"RIFF" + b"\x00" * 64, mime_type="audio/wav", name=name)


def test_every_preview_revoked_exactly_once(audio_file, clock):
    store, previews, _ = make_store(clock)

    store.set_file(audio_file)
    for index in range(4):
        store.set_file(other_file(f"take{index}.wav"))
    store.clear()

    assert len(previews.created) == 5
    assert sorted(previews.revoked) == sorted(previews.created)
    assert len(set(previews.revoked)) == len(previews.revoked)
    assert store.preview_url is None
    assert store.file is None


def test_clear_twice_revokes_once(audio_file, clock):
    store, previews, _ = make_store(clock)

    store.set_file(audio_file)
    store.clear()
    store.clear()

    assert len(previews.revoked) == 1


def test_set_file_keeps_current_preview(audio_file, clock):
    store, previews, _ = make_store(clock)

    store.set_file(audio_file)

    assert store.file is audio_file
    assert store.preview_url == previews.created[-1]
    assert previews.revoked == []


def test_new_file_after_success_resets_pipeline(audio_file):
    async def scenario():
        clock = FakeClock()
        store, _, _ = make_store(clock)
        store.set_file(audio_file)

        task = asyncio.create_task(store.process())
        await clock.advance(10)
        state = await task
        assert state.stage == PipelineStage.SUCCEEDED

        store.set_file(other_file("next.wav"))

        assert store.orchestrator.state.stage == PipelineStage.IDLE
        assert store.orchestrator.state.final_text is None

    asyncio.run(scenario())


def test_clear_resets_pipeline(audio_file):
    async def scenario():
        clock = FakeClock()
        store, _, _ = make_store(clock)
        store.set_file(audio_file)

        task = asyncio.create_task(store.process())
        await clock.advance(10)
        await task
        store.clear()

        assert store.orchestrator.state.stage == PipelineStage.IDLE

    asyncio.run(scenario())


def test_process_without_file_fails_in_uploading():
    async def scenario():
        clock = FakeClock()
        store, _, client = make_store(clock)

        state = await store.process(language="en")

        assert state.stage == PipelineStage.FAILED
        assert state.failed_stage == PipelineStage.UPLOADING
        assert state.error == "No audio file selected"
        assert client.status_calls == 0

    asyncio.run(scenario())


def test_process_passes_language_and_service(audio_file):
    async def scenario():
        clock = FakeClock()
        store, _, client = make_store(clock)
        store.set_file(audio_file)

        task = asyncio.create_task(store.process(language="fr", service="falai"))
        await clock.advance(10)
        await task

        assert client.calls[0] == ("start", "falai")
        assert any(call[0] == "transcribe" and call[2] == "fr" for call in client.calls)

    asyncio.run(scenario())


def test_process_requires_orchestrator(audio_file):
    store = UploadStagingStore(previews=CountingPreviews())
    store.set_file(audio_file)

    with pytest.raises(RuntimeError):
        asyncio.run(store.process())


def test_temp_file_previews(tmp_path, audio_file):
    previews = TempFilePreviews(directory=str(tmp_path))

    url = previews.create(audio_file)
    path = Path(url2pathname(urlparse(url).path))

    assert url.startswith("file://")
    assert path.suffix == ".mp3"
    assert path.read_bytes() == audio_file.data

    previews.revoke(url)
    assert not path.exists()

    # Revoking again is a no-op.
    previews.revoke(url)
