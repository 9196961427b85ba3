"""
Client module for communicating with the lyrics API server.

This module provides a simple interface for the pipeline to:
- Upload audio files for vocal separation
- Check separation job status
- Transcribe a separated vocals track
- Format a transcript into lyrics with Gemini
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import requests
from requests.exceptions import ConnectionError, RequestException, Timeout

from ..pipeline.errors import HTTPStatusError, MalformedResponseError, NetworkError, UploadError
from ..pipeline.models import JobStartResult, JobStatus, RemoteJob, StartMode, UploadedFile

logger = logging.getLogger(__name__)

MB = 1024 * 1024
MAX_SEPARATION_BYTES = 100 * MB
MAX_TRANSCRIPTION_BYTES = 50 * MB

SEPARATION_SERVICES = ("falai", "demucs")

ALLOWED_EXTENSIONS = {"wav", "mp3", "mp4", "m4a", "flac", "aac", "ogg", "wma", "webm"}


def validate_audio_file(file: Optional[UploadedFile], max_bytes: int) -> UploadedFile:
    """
    Check a file before it is sent anywhere.

    Raises:
        UploadError: If no file is given, it is empty, too large, or not audio
    """
    if file is None:
        raise UploadError("No audio file selected")
    if file.size == 0:
        raise UploadError(f"{file.name} is empty")
    if file.size > max_bytes:
        raise UploadError(f"{file.name} is {file.size / MB:.1f} MB; the limit is {max_bytes // MB} MB")

    extension = file.name.rsplit(".", 1)[-1].lower() if "." in file.name else ""
    if not file.mime_type.startswith("audio/") and extension not in ALLOWED_EXTENSIONS:
        raise UploadError(f"{file.name} is not an audio file ({file.mime_type})")
    return file


class APIClient:
    """Client for communicating with the lyrics API server."""

    def __init__(self, base_url: str = "http://localhost:8080", timeout: float = 300):
        """
        Initialize the API client.

        Args:
            base_url: Base URL of the API server
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def health_check(self) -> Dict[str, Any]:
        """
        Check if the API server is healthy.

        Returns:
            Dictionary containing health status information
        """
        response = self._request("GET", "/health")
        return self._json(response)

    def start_separation(self, file: Optional[UploadedFile], service: str = "demucs") -> JobStartResult:
        """
        Upload an audio file and start vocal separation.

        Args:
            file: Audio file to separate
            service: Separation backend, "falai" (Spleeter) or "demucs"

        Returns:
            JobStartResult in async mode (job id + status) or sync mode (output)

        Raises:
            UploadError: If the file or the service is rejected before upload
            RemoteCallError: If the request fails or the response is malformed
        """
        file = validate_audio_file(file, MAX_SEPARATION_BYTES)
        if service not in SEPARATION_SERVICES:
            expected = ", ".join(SEPARATION_SERVICES)
            raise UploadError(f"Unknown separation service: {service} (expected one of: {expected})")

        logger.info(f"Uploading {file.name} ({file.size} bytes) for separation with {service}")
        response = self._request(
            "POST",
            "/api/audio-service",
            params={"service": service},
            files={"audio": (file.name, file.data, file.mime_type)},
        )
        return self._parse_start(response)

    def get_job_status(self, job_id: str) -> RemoteJob:
        """
        Get the status of a separation job.

        Args:
            job_id: Unique identifier for the job

        Returns:
            RemoteJob with current status, output and logs
        """
        response = self._request("GET", f"/api/audio-service/status/{job_id}")
        body = self._json(response)
        try:
            return RemoteJob.from_payload(body, job_id=job_id)
        except (KeyError, ValueError) as e:
            raise MalformedResponseError(f"Invalid status response for job {job_id}: {e}")

    def transcribe(self, audio_url: str, language: str = "en") -> str:
        """
        Transcribe an audio track reachable at a URL.

        Returns:
            Transcribed text
        """
        response = self._request("POST", "/api/audio-to-text", json={"audio_url": audio_url, "language": language})
        return self._field(response, "text")

    def format_lyrics(self, prompt: str) -> str:
        """
        Send a formatting prompt to Gemini.

        Returns:
            The model's answer
        """
        response = self._request("POST", "/api/gemini", json={"prompt": prompt})
        return self._field(response, "result")

    def transcribe_with_gemini(self, file: Optional[UploadedFile], language: str = "en") -> str:
        """
        Upload audio straight to Gemini and get timestamped lyrics back in one call.

        Returns:
            Lyrics text
        """
        file = validate_audio_file(file, MAX_TRANSCRIPTION_BYTES)
        response = self._request(
            "POST",
            "/api/gemini",
            data={"language": language},
            files={"audioFile": (file.name, file.data, file.mime_type)},
        )
        return self._field(response, "lyrics")

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (ConnectionError, Timeout) as e:
            raise NetworkError(f"Unable to reach API server at {url}: {e}")
        except RequestException as e:
            raise NetworkError(f"Request to {url} failed: {e}")

        if not response.ok:
            details = None
            try:
                body = response.json()
                details = body.get("details") or body.get("error") or body.get("message")
            except ValueError:
                details = response.text or None
            message = f"{method} {path} returned HTTP {response.status_code}"
            if details:
                message = f"{message}: {details}"
            raise HTTPStatusError(message, status_code=response.status_code, details=details)

        return response

    def _json(self, response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            raise MalformedResponseError(f"Response from {response.url} is not JSON")
        if not isinstance(body, dict):
            raise MalformedResponseError(f"Response from {response.url} is not a JSON object")
        return body

    def _field(self, response: requests.Response, name: str) -> str:
        body = self._json(response)
        value = body.get(name)
        if not isinstance(value, str):
            raise MalformedResponseError(f"Response from {response.url} has no '{name}' field")
        return value

    def _parse_start(self, response: requests.Response) -> JobStartResult:
        body = self._json(response)

        mode = body.get("mode")
        if mode is None:
            # Older servers signal polling with 202 Accepted and nothing else.
            mode = StartMode.ASYNC.value if response.status_code == 202 else StartMode.SYNC.value
        try:
            mode = StartMode(mode)
        except ValueError:
            raise MalformedResponseError(f"Unknown start mode: {mode!r}")

        if mode == StartMode.SYNC:
            if body.get("output") is None:
                raise MalformedResponseError("Direct separation result has no 'output' field")
            return JobStartResult(mode=mode, output=body["output"])

        job_id = body.get("id")
        if not job_id:
            raise MalformedResponseError("Separation job response has no 'id' field")
        try:
            status = JobStatus.parse(body.get("status") or "starting")
        except ValueError as e:
            raise MalformedResponseError(str(e))

        job = RemoteJob.from_payload({**body, "status": status})
        return JobStartResult(mode=mode, id=str(job_id), status=status, created_at=job.created_at)


class AsyncAPIClient:
    """Coroutine facade over APIClient; each call runs on a worker thread."""

    def __init__(self, client: APIClient):
        self.client = client

    async def start_separation(self, file: Optional[UploadedFile], service: str = "demucs") -> JobStartResult:
        return await asyncio.to_thread(self.client.start_separation, file, service)

    async def get_job_status(self, job_id: str) -> RemoteJob:
        return await asyncio.to_thread(self.client.get_job_status, job_id)

    async def transcribe(self, audio_url: str, language: str = "en") -> str:
        return await asyncio.to_thread(self.client.transcribe, audio_url, language)

    async def format_lyrics(self, prompt: str) -> str:
        return await asyncio.to_thread(self.client.format_lyrics, prompt)

    async def transcribe_with_gemini(self, file: Optional[UploadedFile], language: str = "en") -> str:
        return await asyncio.to_thread(self.client.transcribe_with_gemini, file, language)
