"""
Pipeline orchestrator: the state machine behind one lyrics request.

A run walks strictly forward through

    idle -> uploading -> separating -> transcribing -> formatting -> succeeded

and drops to failed from whichever stage broke. Only one remote operation is
in flight per run, each stage consumes the previous stage's output, and the
whole run is published as a single PipelineState that listeners can observe.
reset() (or a new start_run) abandons the current run: its poller is
cancelled and any result it produces afterwards is discarded.
"""

import logging
import time
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, List, Optional
from urllib.parse import urlparse

from .errors import JobFailedError, JobTimeoutError, LyricsPipelineError, MissingFieldError, PipelineError
from .lyrics import build_format_prompt
from .models import (
    JobStartResult,
    JobStatus,
    PipelineStage,
    PipelineState,
    ProgressSnapshot,
    RemoteJob,
    StartMode,
    UploadedFile,
)
from .poller import PollWatch, StatusPoller
from .progress import ProgressTracker

logger = logging.getLogger(__name__)

StateListener = Callable[[PipelineState], None]

ALLOWED_TRANSITIONS = {
    PipelineStage.IDLE: {PipelineStage.UPLOADING},
    PipelineStage.UPLOADING: {PipelineStage.SEPARATING, PipelineStage.FAILED},
    PipelineStage.SEPARATING: {PipelineStage.TRANSCRIBING, PipelineStage.FAILED},
    PipelineStage.TRANSCRIBING: {PipelineStage.FORMATTING, PipelineStage.FAILED},
    PipelineStage.FORMATTING: {PipelineStage.SUCCEEDED, PipelineStage.FAILED},
    PipelineStage.SUCCEEDED: set(),
    PipelineStage.FAILED: set(),
}


class _RunAbandoned(Exception):
    """Raised inside a run that was superseded by reset() or a newer run."""


def extract_vocals_url(output: Any) -> str:
    """
    Pick the vocals track out of a separation result.

    Separation providers answer either with a bare URL or with a mapping of
    stem name to URL; some return a list of stem URLs, where the vocals file is named
    `vocals.<ext>` (and `no_vocals.<ext>` is the accompaniment).

    Raises:
        MissingFieldError: If no vocals URL can be found
    """
    if isinstance(output, str):
        if output.strip():
            return output
    elif isinstance(output, Mapping):
        vocals = output.get("vocals")
        if isinstance(vocals, str) and vocals.strip():
            return vocals
        stems = ", ".join(sorted(str(key) for key in output)) or "none"
        raise MissingFieldError(f"Separation result has no vocals track (stems: {stems})")
    elif isinstance(output, (list, tuple)):
        for item in output:
            if isinstance(item, str) and Path(urlparse(item).path).stem.lower() == "vocals":
                return item

    raise MissingFieldError("Separation result has no vocals track")


class PipelineOrchestrator:
    """Runs separation, transcription and formatting for one audio file at a time."""

    def __init__(
        self,
        client,
        poller: Optional[StatusPoller] = None,
        separation_service: str = "demucs",
        language: str = "en",
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            client: Async lyrics API client (see AsyncAPIClient)
            poller: Status poller; one is built on the client's get_job_status if omitted
            separation_service: Default separation backend ("falai" or "demucs")
            language: Default language hint for transcription and formatting
            clock: Monotonic clock; defaults to the poller's clock
        """
        self.client = client
        self.poller = poller or StatusPoller(client.get_job_status, clock=clock or time.monotonic)
        self.clock = clock or self.poller.clock
        self.separation_service = separation_service
        self.language = language

        self._state = PipelineState()
        self._listeners: List[StateListener] = []
        self._run_id = 0
        self._watch: Optional[PollWatch] = None

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state.stage not in (PipelineStage.IDLE, PipelineStage.SUCCEEDED, PipelineStage.FAILED)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a listener called with every new state.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def reset(self) -> None:
        """Abandon the current run, if any, and go back to idle."""
        self._abandon_run()
        if self._state.stage != PipelineStage.IDLE:
            logger.info(f"Pipeline reset from {self._state.stage.value}")
        self._set_state(PipelineState())

    async def start_run(
        self,
        file: Optional[UploadedFile],
        language: Optional[str] = None,
        service: Optional[str] = None,
    ) -> PipelineState:
        """
        Run the whole pipeline for a file.

        Never raises for stage failures: they end the run in the failed state.

        Args:
            file: Audio file to process
            language: Language hint (defaults to the orchestrator's)
            service: Separation backend (defaults to the orchestrator's)

        Returns:
            The state the run ended in
        """
        self.reset()
        run_id = self._run_id
        language = language or self.language
        service = service or self.separation_service

        try:
            name = file.name if file is not None else "audio"
            self._transition(run_id, PipelineStage.UPLOADING, progress=ProgressSnapshot(0, f"Uploading {name}..."))
            start = await self.client.start_separation(file, service)
            self._ensure_current(run_id)

            output = await self._separate(run_id, start)
            vocals_url = extract_vocals_url(output)
            logger.info(f"Vocals track ready: {vocals_url}")

            self._transition(
                run_id,
                PipelineStage.TRANSCRIBING,
                job=None,
                progress=ProgressSnapshot(0, "Transcribing vocals..."),
            )
            transcript = await self.client.transcribe(vocals_url, language)
            self._ensure_current(run_id)
            if not transcript or not transcript.strip():
                raise MissingFieldError("Transcription returned no text")

            self._transition(
                run_id,
                PipelineStage.FORMATTING,
                transcript=transcript,
                progress=ProgressSnapshot(0, "Formatting lyrics..."),
            )
            lyrics = await self.client.format_lyrics(build_format_prompt(transcript, language))
            self._ensure_current(run_id)
            if not lyrics or not lyrics.strip():
                raise MissingFieldError("Lyrics formatting returned no text")

            self._transition(
                run_id,
                PipelineStage.SUCCEEDED,
                final_text=lyrics.strip(),
                progress=ProgressSnapshot(100, "Lyrics ready"),
            )
            logger.info(f"Pipeline run {run_id} succeeded")

        except _RunAbandoned:
            logger.info(f"Pipeline run {run_id} was abandoned")
        except LyricsPipelineError as e:
            self._fail(run_id, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in pipeline run {run_id}")
            self._fail(run_id, f"Unexpected error: {e}")

        return self._state

    async def _separate(self, run_id: int, start: JobStartResult) -> Any:
        if start.mode == StartMode.SYNC:
            logger.info("Separation finished synchronously")
            self._transition(run_id, PipelineStage.SEPARATING, progress=ProgressSnapshot(100, "Vocals separated"))
            return start.output

        job = start.to_job()
        tracker = ProgressTracker(self.clock(), self.poller.timeout)
        self._transition(run_id, PipelineStage.SEPARATING, job=job, progress=tracker.update(job, self.clock()))

        def on_update(update: RemoteJob) -> None:
            if run_id != self._run_id:
                return
            self._set_state(replace(self._state, job=update, progress=tracker.update(update, self.clock())))

        self._watch = self.poller.watch(job.id, on_update)
        final = await self._watch.result()
        self._ensure_current(run_id)
        self._watch = None

        if final is None:
            raise _RunAbandoned()
        if final.timed_out:
            raise JobTimeoutError(final.error or f"Separation job {job.id} timed out")
        if final.status != JobStatus.SUCCEEDED:
            raise JobFailedError(f"Separation {final.status.value}: {final.error or 'no details from provider'}")
        return final.output

    def _abandon_run(self) -> None:
        self._run_id += 1
        if self._watch is not None:
            self._watch.cancel()
            self._watch = None

    def _ensure_current(self, run_id: int) -> None:
        if run_id != self._run_id:
            raise _RunAbandoned()

    def _transition(self, run_id: int, stage: PipelineStage, **changes) -> None:
        self._ensure_current(run_id)
        current = self._state.stage
        if stage not in ALLOWED_TRANSITIONS[current]:
            raise PipelineError(f"Illegal transition {current.value} -> {stage.value}")

        logger.info(f"Pipeline {current.value} -> {stage.value}")
        self._set_state(replace(self._state, stage=stage, **changes))

    def _fail(self, run_id: int, message: str) -> None:
        if run_id != self._run_id:
            return
        if self._watch is not None:
            self._watch.cancel()
            self._watch = None

        failed_stage = self._state.stage
        logger.error(f"Pipeline failed while {failed_stage.value}: {message}")
        self._set_state(
            replace(
                self._state,
                stage=PipelineStage.FAILED,
                failed_stage=failed_stage,
                error=message,
                progress=replace(self._state.progress, message=message),
            )
        )

    def _set_state(self, state: PipelineState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"State listener failed: {e}")
