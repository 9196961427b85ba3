"""
Progress estimation for remote jobs.

Combines the "Progress: <n> %" markers some providers write to their logs
with an elapsed-time curve, so the UI keeps moving even when a provider
emits nothing. The estimate is for display only: 100% is reserved for a
job that actually reported success.
"""

import math
import re
from typing import Iterable, Optional

from .models import JobStatus, ProgressSnapshot, RemoteJob

PROGRESS_PATTERN = re.compile(r"Progress:\s*(\d+(?:\.\d+)?)\s*%")

DEFAULT_CEILING_SECONDS = 360.0

STATUS_MESSAGES = {
    JobStatus.QUEUED: "Waiting in queue...",
    JobStatus.STARTING: "Starting separation model...",
    JobStatus.PROCESSING: "Separating vocals...",
    JobStatus.SUCCEEDED: "Vocals separated",
    JobStatus.FAILED: "Separation failed",
    JobStatus.CANCELED: "Separation canceled",
}


def parse_log_progress(logs: Iterable[str]) -> Optional[float]:
    """Return the value of the last progress marker in the logs, if any."""
    last = None
    for line in logs:
        for match in PROGRESS_PATTERN.finditer(line):
            last = float(match.group(1))
    return last


def estimate(logs: Iterable[str], started_at: float, now: float, ceiling: float = DEFAULT_CEILING_SECONDS) -> int:
    """
    Estimate completion percentage of a running job.

    Args:
        logs: Provider log lines seen so far
        started_at: Clock value when the job started
        now: Current clock value
        ceiling: Duration (seconds) the time curve spreads over

    Returns:
        Integer percentage in [0, 99]
    """
    log_value = parse_log_progress(logs)
    log_based = 0 if log_value is None else int(min(100.0, max(0.0, log_value)))

    elapsed = max(0.0, now - started_at)
    time_based = min(99, math.floor(elapsed / ceiling * 100)) if ceiling > 0 else 99

    return min(99, max(log_based, time_based))


class ProgressTracker:
    """Keeps the progress of a single job monotonic across poll ticks."""

    def __init__(self, started_at: float, ceiling: float = DEFAULT_CEILING_SECONDS):
        self.started_at = started_at
        self.ceiling = ceiling
        self.percentage = 0

    def update(self, job: RemoteJob, now: float) -> ProgressSnapshot:
        if job.status == JobStatus.SUCCEEDED:
            percentage = 100
        else:
            percentage = estimate(job.logs, self.started_at, now, self.ceiling)
        self.percentage = max(self.percentage, percentage)

        if job.timed_out or (job.status.is_terminal and job.error):
            message = job.error or STATUS_MESSAGES[job.status]
        elif job.status == JobStatus.PROCESSING:
            message = f"{STATUS_MESSAGES[job.status]} {self.percentage}%"
        else:
            message = STATUS_MESSAGES[job.status]

        return ProgressSnapshot(percentage=self.percentage, message=message, logs=list(job.logs))
