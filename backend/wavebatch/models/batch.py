"""Batch record: one user request spanning many jobs, finalized as a unit."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from wavebatch.models.job import JobRef

BatchStatus = Literal["processing", "completed"]


@dataclass
class Batch:
    id: str
    archive_record_id: str
    expected_count: int
    prompt: str = ""
    width: int = 0
    height: int = 0
    job_ids: list[JobRef] = field(default_factory=list)
    seen_ids: list[JobRef] = field(default_factory=list)
    failed_ids: list[JobRef] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    # status: processing | completed (an all-failed batch still completes)
    status: BatchStatus = "processing"
    finalized: bool = False
    started_at: float = field(default_factory=time.time)
    finalized_at: datetime | None = None

    @property
    def all_seen(self) -> bool:
        """True once every expected unit has reached a terminal state."""
        return len(self.seen_ids) == self.expected_count

    def snapshot(self) -> BatchSnapshot:
        return BatchSnapshot(
            run_id=self.id,
            archive_record_id=self.archive_record_id,
            prompt=self.prompt,
            status=self.status,
            finalized=self.finalized,
            request_ids=[str(j) for j in self.job_ids],
            seen_ids=[str(j) for j in self.seen_ids],
            failed_ids=[str(j) for j in self.failed_ids],
            outputs=list(self.outputs),
            started_at=self.started_at,
            finalized_at=self.finalized_at,
        )


@dataclass(frozen=True)
class BatchSnapshot:
    """Immutable copy of a batch taken under its lock, safe to hand to I/O."""

    run_id: str
    archive_record_id: str
    prompt: str
    status: BatchStatus
    finalized: bool
    request_ids: list[str]
    seen_ids: list[str]
    failed_ids: list[str]
    outputs: list[str]
    started_at: float
    finalized_at: datetime | None
