"""
Lyrics pipeline package.

Sequences the remote stages that turn a song into lyrics: vocal separation
(polled until the provider finishes), transcription of the vocals track, and
formatting of the transcript into lyrics.

Main components:
- StatusPoller: Polls a remote job until it finishes, times out, or is cancelled
- ProgressTracker / estimate: Display-only progress from logs and elapsed time
- PipelineOrchestrator: The stage state machine behind one lyrics request
- UploadStagingStore: Owns the selected file and its preview URL

Example usage:
    from lyricdrop.client import APIClient, AsyncAPIClient
    from lyricdrop.pipeline import PipelineOrchestrator, UploadStagingStore, UploadedFile

    orchestrator = PipelineOrchestrator(AsyncAPIClient(APIClient("http://localhost:8080")))
    store = UploadStagingStore(orchestrator)
    store.set_file(UploadedFile.from_path("song.mp3"))
    state = await store.process(language="en")
"""

from .errors import (
    HTTPStatusError,
    JobFailedError,
    JobTimeoutError,
    LyricsPipelineError,
    MalformedResponseError,
    MissingFieldError,
    NetworkError,
    PipelineError,
    RemoteCallError,
    UploadError,
)
from .lyrics import build_format_prompt, format_timestamp, lyric_index_at, parse_timed_lyrics, render_timed_lyrics
from .models import (
    JobStartResult,
    JobStatus,
    LyricLine,
    PipelineStage,
    PipelineState,
    ProgressSnapshot,
    RemoteJob,
    StartMode,
    UploadedFile,
)
from .orchestrator import PipelineOrchestrator, extract_vocals_url
from .poller import PollWatch, StatusPoller
from .progress import ProgressTracker, estimate, parse_log_progress
from .staging import TempFilePreviews, UploadStagingStore

__all__ = [
    "HTTPStatusError",
    "JobFailedError",
    "JobTimeoutError",
    "LyricsPipelineError",
    "MalformedResponseError",
    "MissingFieldError",
    "NetworkError",
    "PipelineError",
    "RemoteCallError",
    "UploadError",
    "build_format_prompt",
    "format_timestamp",
    "lyric_index_at",
    "parse_timed_lyrics",
    "render_timed_lyrics",
    "JobStartResult",
    "JobStatus",
    "LyricLine",
    "PipelineStage",
    "PipelineState",
    "ProgressSnapshot",
    "RemoteJob",
    "StartMode",
    "UploadedFile",
    "PipelineOrchestrator",
    "extract_vocals_url",
    "PollWatch",
    "StatusPoller",
    "ProgressTracker",
    "estimate",
    "parse_log_progress",
    "TempFilePreviews",
    "UploadStagingStore",
]
