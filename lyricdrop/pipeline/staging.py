"""
Staging area for the file the user picked.

The store owns the selected UploadedFile and a local preview URL for it.
Every preview URL it creates is revoked exactly once, when the file is
replaced or cleared.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

from .models import PipelineStage, PipelineState, UploadedFile

logger = logging.getLogger(__name__)


class PreviewFactory(Protocol):
    def create(self, file: UploadedFile) -> str: ...

    def revoke(self, url: str) -> None: ...


class TempFilePreviews:
    """Previews backed by temporary files, addressed with file:// URIs."""

    def __init__(self, directory: Optional[str] = None):
        self.directory = directory
        self._paths = {}

    def create(self, file: UploadedFile) -> str:
        suffix = Path(file.name).suffix
        with tempfile.NamedTemporaryFile(delete=False, suffix=suffix, dir=self.directory) as tmp_file:
            tmp_file.write(file.data)
            path = Path(tmp_file.name)

        url = path.as_uri()
        self._paths[url] = path
        return url

    def revoke(self, url: str) -> None:
        path = self._paths.pop(url, None)
        if path is None:
            logger.warning(f"Preview {url} was not created here or is already revoked")
            return
        if path.exists():
            os.unlink(path)


class UploadStagingStore:
    """Holds the selected audio file and its preview URL."""

    def __init__(self, orchestrator=None, previews: Optional[PreviewFactory] = None):
        """
        Initialize the store.

        Args:
            orchestrator: PipelineOrchestrator to reset when the file changes
            previews: Preview URL factory (temporary files by default)
        """
        self.orchestrator = orchestrator
        self.previews = previews or TempFilePreviews()
        self.file: Optional[UploadedFile] = None
        self.preview_url: Optional[str] = None

    def set_file(self, file: UploadedFile) -> None:
        """Replace the staged file, refreshing its preview and dropping any stale result."""
        self._revoke_preview()
        self.file = file
        self.preview_url = self.previews.create(file)
        logger.info(f"Staged {file.name} ({file.size} bytes, {file.mime_type})")

        if self.orchestrator is not None and self.orchestrator.state.stage != PipelineStage.IDLE:
            self.orchestrator.reset()

    def clear(self) -> None:
        """Drop the staged file and its preview, and reset the pipeline."""
        self._revoke_preview()
        self.file = None
        if self.orchestrator is not None:
            self.orchestrator.reset()

    async def process(self, language: Optional[str] = None, service: Optional[str] = None) -> PipelineState:
        """Run the pipeline on the staged file."""
        if self.orchestrator is None:
            raise RuntimeError("No orchestrator attached to the staging store")
        return await self.orchestrator.start_run(self.file, language=language, service=service)

    def _revoke_preview(self) -> None:
        if self.preview_url is not None:
            url, self.preview_url = self.preview_url, None
            self.previews.revoke(url)
