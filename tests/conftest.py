"""
Shared fixtures: a simulated clock and an in-memory lyrics API client.

How to run:
    poetry run pytest
"""

import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from lyricdrop.client.api_client import MAX_SEPARATION_BYTES, validate_audio_file
from lyricdrop.pipeline import JobStartResult, JobStatus, RemoteJob, StartMode, UploadedFile

VOCALS_URL = "https://replicate.delivery/pbxt/abc/vocals.mp3"


async def settle(rounds: int = 50) -> None:
    """Let every ready task run until the loop goes quiet."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """Monotonic clock whose sleep only returns when the test advances time."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self._sleepers: List[list] = []
        self._seq = 0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self._seq += 1
        entry = [self.now + seconds, self._seq, asyncio.get_running_loop().create_future()]
        self._sleepers.append(entry)
        try:
            await entry[2]
        finally:
            if entry in self._sleepers:
                self._sleepers.remove(entry)

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        await settle()
        while True:
            due = [entry for entry in self._sleepers if entry[0] <= target and not entry[2].done()]
            if not due:
                break
            entry = min(due, key=lambda item: (item[0], item[1]))
            self._sleepers.remove(entry)
            self.now = max(self.now, entry[0])
            entry[2].set_result(None)
            await settle()
        self.now = max(self.now, target)
        await settle()


def job(status: str, output=None, logs: Optional[List[str]] = None, error: Optional[str] = None) -> RemoteJob:
    return RemoteJob(id="pred-1", status=JobStatus(status), output=output, logs=logs or [], error=error)


class FakeLyricsClient:
    """Async stand-in for AsyncAPIClient with scripted answers."""

    def __init__(
        self,
        start: Optional[JobStartResult] = None,
        statuses: Optional[list] = None,
        transcript="la la la\nla la",
        lyrics="La la la\nLa la",
        clock: Optional[FakeClock] = None,
    ):
        self.start = start or JobStartResult(mode=StartMode.ASYNC, id="pred-1", status=JobStatus.STARTING)
        self.statuses = list(statuses or [job("succeeded", output={"vocals": VOCALS_URL})])
        self.transcript = transcript
        self.lyrics = lyrics
        self.clock = clock
        self.transcribe_gate: Optional[asyncio.Event] = None
        self.calls: List[tuple] = []
        self.poll_times: List[float] = []

    @property
    def status_calls(self) -> int:
        return len([call for call in self.calls if call[0] == "status"])

    def called(self, name: str) -> bool:
        return any(call[0] == name for call in self.calls)

    async def start_separation(self, file, service="demucs"):
        self.calls.append(("start", service))
        validate_audio_file(file, MAX_SEPARATION_BYTES)
        if isinstance(self.start, Exception):
            raise self.start
        return self.start

    async def get_job_status(self, job_id):
        self.calls.append(("status", job_id))
        if self.clock is not None:
            self.poll_times.append(self.clock())
        answer = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def transcribe(self, audio_url, language="en"):
        self.calls.append(("transcribe", audio_url, language))
        if self.transcribe_gate is not None:
            await self.transcribe_gate.wait()
        if isinstance(self.transcript, Exception):
            raise self.transcript
        return self.transcript

    async def format_lyrics(self, prompt):
        self.calls.append(("format", prompt))
        if isinstance(self.lyrics, Exception):
            raise self.lyrics
        return self.lyrics


class CountingPreviews:
    """Preview factory that records every URL it creates and revokes."""

    def __init__(self):
        self.created: List[str] = []
        self.revoked: List[str] = []

    def create(self, file) -> str:
        url = f"blob:preview/{len(self.created) + 1}/{file.name}"
        self.created.append(url)
        return url

    def revoke(self, url: str) -> None:
        self.revoked.append(url)


@pytest.fixture
def audio_file() -> UploadedFile:
    return UploadedFile(data=b"ID3" + b"\x00" * 2048, mime_type="audio/mpeg", name="song.mp3")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
