"""Job lifecycle states and queue constants."""

from enum import StrEnum

# Redis keys
QUEUE_KEY = "queue:generation"
COUNTER_KEY = "queue:generation:counter"


class JobStatus(StrEnum):
    """Job lifecycle states, in monotonic order."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

# Ordering used to check that observed status sequences never move backwards
STATUS_RANK = {
    JobStatus.QUEUED: 0,
    JobStatus.RUNNING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
}
