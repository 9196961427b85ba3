"""
Data models for the lyrics pipeline.
"""

import mimetypes
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


class JobStatus(Enum):
    """Status of a remote job as reported by the provider."""

    QUEUED = "queued"
    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELED)

    @classmethod
    def parse(cls, value: Any) -> "JobStatus":
        """
        Convert a provider status string into a JobStatus.

        Accepts the Replicate vocabulary plus the queue-style spellings some
        providers use (IN_QUEUE, IN_PROGRESS, COMPLETED, cancelled).

        Raises:
            ValueError: If the value is not a known status
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid job status: {value!r}")

        normalized = value.strip().lower()
        aliases = {
            "in_queue": "queued",
            "in_progress": "processing",
            "completed": "succeeded",
            "cancelled": "canceled",
        }
        return cls(aliases.get(normalized, normalized))


class StartMode(Enum):
    """How a remote job start call answered."""

    ASYNC = "async"
    SYNC = "sync"


class PipelineStage(Enum):
    """Stages of one lyrics pipeline run."""

    IDLE = "idle"
    UPLOADING = "uploading"
    SEPARATING = "separating"
    TRANSCRIBING = "transcribing"
    FORMATTING = "formatting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStage.SUCCEEDED, PipelineStage.FAILED)


# Output of a separation job: a bare URL, a stem -> URL mapping, or raw text.
JobOutput = Union[str, Dict[str, Any], List[Any], None]


@dataclass
class UploadedFile:
    """An audio file selected by the user."""

    data: bytes
    mime_type: str
    name: str

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Union[str, Path], mime_type: Optional[str] = None) -> "UploadedFile":
        """
        Load a file from disk.

        Args:
            path: Path to the audio file
            mime_type: Explicit MIME type (guessed from the extension if omitted)

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Audio file not found: {path}")

        if mime_type is None:
            mime_type, _ = mimetypes.guess_type(path.name)

        return cls(data=path.read_bytes(), mime_type=mime_type or "application/octet-stream", name=path.name)


@dataclass
class RemoteJob:
    """A long-running job on a third-party service."""

    id: str
    status: JobStatus
    output: JobOutput = None
    logs: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    error: Optional[str] = None
    timed_out: bool = False

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], job_id: Optional[str] = None) -> "RemoteJob":
        """
        Build a RemoteJob from a status endpoint body.

        Raises:
            KeyError: If the payload has no status
            ValueError: If the status is unknown
        """
        status = JobStatus.parse(payload["status"])

        logs = payload.get("logs") or []
        if isinstance(logs, str):
            logs = logs.splitlines()

        created_at = datetime.now()
        raw_created = payload.get("created_at")
        if isinstance(raw_created, str):
            try:
                created_at = datetime.fromisoformat(raw_created.replace("Z", "+00:00"))
            except ValueError:
                pass

        error = payload.get("error")
        return cls(
            id=str(payload.get("id") or job_id or ""),
            status=status,
            output=payload.get("output"),
            logs=[str(line) for line in logs],
            created_at=created_at,
            error=str(error) if error else None,
        )


@dataclass
class JobStartResult:
    """Answer of a job start call: an async handle or a direct result."""

    mode: StartMode
    id: Optional[str] = None
    status: Optional[JobStatus] = None
    output: JobOutput = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_job(self) -> RemoteJob:
        """Turn an async handle into the RemoteJob the poller will track."""
        return RemoteJob(id=self.id or "", status=self.status or JobStatus.STARTING, created_at=self.created_at)


@dataclass(frozen=True)
class ProgressSnapshot:
    """UI-facing progress estimate. Not authoritative."""

    percentage: int = 0
    message: str = ""
    logs: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PipelineState:
    """The single observable state of a pipeline orchestrator."""

    stage: PipelineStage = PipelineStage.IDLE
    job: Optional[RemoteJob] = None
    progress: ProgressSnapshot = field(default_factory=ProgressSnapshot)
    transcript: Optional[str] = None
    final_text: Optional[str] = None
    failed_stage: Optional[PipelineStage] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class LyricLine:
    """One timestamped lyric line."""

    time: float
    text: str
