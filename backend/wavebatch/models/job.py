"""Job record: one unit of generation work tracked to a terminal outcome."""

from dataclasses import dataclass
from typing import Literal

JobStatus = Literal["submitted", "processing", "completed", "failed"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


@dataclass(frozen=True)
class SubmissionFailedId:
    """Identifier for a unit that never reached the generation engine.

    Kept type-distinct from engine-assigned job ids so the two can never collide.
    """

    created_ms: int
    index: int

    def __str__(self) -> str:
        return f"failed-{self.created_ms}-{self.index}"


# Entries in a batch's job-id sequence: engine ids or synthetic submission failures.
JobRef = str | SubmissionFailedId


@dataclass
class Job:
    id: str
    batch_id: str
    # status: submitted | processing | completed | failed
    status: JobStatus = "submitted"
    retries: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
