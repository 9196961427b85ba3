"""
Error taxonomy for the lyrics pipeline.

Every error a stage can raise derives from LyricsPipelineError so the
orchestrator can convert it into a failed pipeline state in one place.
"""

from typing import Optional


class LyricsPipelineError(Exception):
    """Base class for all pipeline errors."""


class UploadError(LyricsPipelineError):
    """No file selected, or the file was rejected by size or type."""


class RemoteCallError(LyricsPipelineError):
    """A call to the lyrics API failed."""


class NetworkError(RemoteCallError):
    """The request never produced a response (connection refused, timeout, ...)."""


class HTTPStatusError(RemoteCallError):
    """The server answered with a non-2xx status code."""

    def __init__(self, message: str, status_code: int, details: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class MalformedResponseError(RemoteCallError):
    """The response body was not JSON or lacked a required field."""


class JobFailedError(RemoteCallError):
    """A remote job finished with a failed or canceled status."""


class JobTimeoutError(LyricsPipelineError, TimeoutError):
    """A remote job did not reach a terminal status before the polling ceiling."""


class MissingFieldError(LyricsPipelineError):
    """A stage output lacked the field the next stage needs."""


class PipelineError(LyricsPipelineError):
    """The orchestrator was asked to make an illegal state transition."""
