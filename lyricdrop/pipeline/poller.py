"""
Status polling for remote jobs.

A watch checks a job immediately, then on a fixed-rate schedule until the
job reaches a terminal status, the polling ceiling passes, or the caller
cancels it. Each tick awaits its request before the next one is scheduled,
so updates are delivered strictly one at a time. A request still pending
when the ceiling passes is abandoned, so a hung status call cannot push the
timeout back.
"""

import asyncio
import logging
import math
import time
from typing import Awaitable, Callable, Optional

from .errors import JobTimeoutError, RemoteCallError
from .models import JobStatus, RemoteJob

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 3.0
DEFAULT_TIMEOUT_SECONDS = 6 * 60.0

FetchStatus = Callable[[str], Awaitable[RemoteJob]]
UpdateCallback = Callable[[RemoteJob], None]


class PollWatch:
    """Handle on a running watch: cancel it or await its terminal job."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        self.cancelled = False
        self._task: Optional[asyncio.Task] = None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def cancel(self) -> None:
        """Stop the watch. No further updates are delivered. Safe to call twice."""
        if self.cancelled:
            return
        self.cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.info(f"Stopped polling job {self.job_id}")

    async def result(self) -> Optional[RemoteJob]:
        """
        Wait for the watch to finish.

        Returns:
            The terminal RemoteJob, or None if the watch was cancelled
        """
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled():
                return None
            raise


class StatusPoller:
    """Polls a remote job until it finishes, times out, or is cancelled."""

    def __init__(
        self,
        fetch_status: FetchStatus,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the poller.

        Args:
            fetch_status: Coroutine function returning the current RemoteJob for an id
            interval: Seconds between checks
            timeout: Seconds after the first check at which the job is declared timed out
            clock: Monotonic clock, injectable for simulated time
            sleep: Sleep coroutine matching the clock
        """
        self.fetch_status = fetch_status
        self.interval = interval
        self.timeout = timeout
        self.clock = clock
        self.sleep = sleep
        self._active: Optional[PollWatch] = None

    async def poll(self, job_id: str) -> RemoteJob:
        """Check a job's status once."""
        return await self.fetch_status(job_id)

    def watch(
        self,
        job_id: str,
        on_update: UpdateCallback,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> PollWatch:
        """
        Start polling a job in a background task.

        Any watch previously started by this poller is cancelled first.

        Args:
            job_id: Remote job identifier
            on_update: Called with every polled RemoteJob, the last one terminal
            interval: Override of the poller's interval
            timeout: Override of the poller's timeout

        Returns:
            PollWatch handle
        """
        self.cancel()

        handle = PollWatch(job_id)
        handle._task = asyncio.get_running_loop().create_task(
            self._run(
                handle,
                on_update,
                self.interval if interval is None else interval,
                self.timeout if timeout is None else timeout,
            )
        )
        self._active = handle
        return handle

    def cancel(self) -> None:
        """Cancel the active watch, if any."""
        if self._active is not None:
            self._active.cancel()
            self._active = None

    async def _run(self, handle: PollWatch, on_update: UpdateCallback, interval: float, timeout: float) -> RemoteJob:
        job_id = handle.job_id
        started = self.clock()
        deadline = started + timeout
        next_tick = started
        logger.info(f"Polling job {job_id} every {interval:.1f}s (timeout {timeout:.0f}s)")

        last: Optional[RemoteJob] = None

        while True:
            try:
                job = await self._fetch_before(job_id, deadline)
            except RemoteCallError as e:
                logger.error(f"Status check failed for job {job_id}: {e}")
                job = RemoteJob(id=job_id, status=JobStatus.FAILED, error=f"Status check failed: {e}")

            if handle.cancelled:
                raise asyncio.CancelledError()
            if job is None:
                return self._time_out(handle, on_update, last, timeout)

            last = job
            on_update(job)
            if job.status.is_terminal:
                logger.info(f"Job {job_id} finished with status {job.status.value}")
                return job

            next_tick += interval
            now = self.clock()
            if now > next_tick:
                # Request outlived one or more slots; skip to the next free one.
                next_tick += math.ceil((now - next_tick) / interval) * interval

            await self.sleep(max(0.0, min(next_tick, deadline) - now))

            if self.clock() >= deadline:
                return self._time_out(handle, on_update, last, timeout)

    async def _fetch_before(self, job_id: str, deadline: float) -> Optional[RemoteJob]:
        """Check the job once, giving up when the deadline passes first. Returns None on give-up."""
        request = asyncio.ensure_future(self.poll(job_id))
        timer = asyncio.ensure_future(self.sleep(max(0.0, deadline - self.clock())))
        try:
            done, _ = await asyncio.wait({request, timer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            timer.cancel()
            if not request.done():
                request.cancel()

        if request in done:
            return request.result()
        logger.warning(f"Status check for job {job_id} still pending at the polling deadline")
        return None

    def _time_out(
        self, handle: PollWatch, on_update: UpdateCallback, last: Optional[RemoteJob], timeout: float
    ) -> RemoteJob:
        job_id = handle.job_id
        error = JobTimeoutError(f"Timed out: job {job_id} did not finish within {timeout / 60:g} minutes")
        logger.warning(str(error))
        timed_out = RemoteJob(id=job_id, status=JobStatus.FAILED, error=str(error), timed_out=True)
        if last is not None:
            timed_out.output = last.output
            timed_out.logs = last.logs
            timed_out.created_at = last.created_at

        if handle.cancelled:
            raise asyncio.CancelledError()
        on_update(timed_out)
        return timed_out
