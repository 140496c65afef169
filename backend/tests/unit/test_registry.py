"""Unit tests for InMemoryRegistry and the retention sweeper."""

import asyncio

import pytest

from wavebatch.models.batch import Batch
from wavebatch.models.job import Job
from wavebatch.registry import InMemoryRegistry, NotFoundError
from wavebatch.services.retention import sweep_forever


def _batch(run_id: str = "run-1") -> Batch:
    return Batch(id=run_id, archive_record_id="rec1", expected_count=1)


class TestInMemoryRegistry:
    def test_round_trips_jobs_and_batches(self) -> None:
        registry = InMemoryRegistry()
        registry.create_batch(_batch())
        registry.create_job(Job(id="a", batch_id="run-1"))

        assert registry.get_batch("run-1").archive_record_id == "rec1"
        assert registry.get_job("a").status == "submitted"
        assert [j.id for j in registry.jobs_for_batch("run-1")] == ["a"]

    def test_unknown_ids_raise_not_found(self) -> None:
        registry = InMemoryRegistry()
        with pytest.raises(NotFoundError):
            registry.get_job("nope")
        with pytest.raises(NotFoundError):
            registry.get_batch("nope")
        with pytest.raises(NotFoundError):
            registry.lock_for("nope")

    def test_job_requires_existing_batch(self) -> None:
        with pytest.raises(NotFoundError):
            InMemoryRegistry().create_job(Job(id="a", batch_id="missing"))

    def test_evicts_only_finalized_batches_past_grace_period(self) -> None:
        registry = InMemoryRegistry()
        registry.create_batch(_batch("old"))
        registry.create_job(Job(id="a", batch_id="old"))
        registry.create_batch(_batch("recent"))
        registry.create_batch(_batch("running"))
        registry.mark_finalized("old", now=100.0)
        registry.mark_finalized("recent", now=190.0)

        evicted = registry.evict_finalized(60.0, now=200.0)

        assert evicted == 1
        with pytest.raises(NotFoundError):
            registry.get_batch("old")
        with pytest.raises(NotFoundError):
            registry.get_job("a")
        assert registry.get_batch("recent").id == "recent"
        assert registry.get_batch("running").id == "running"


class TestSweepForever:
    @pytest.mark.asyncio
    async def test_sweeps_on_every_interval(self) -> None:
        registry = InMemoryRegistry()
        registry.create_batch(_batch("old"))
        registry.mark_finalized("old", now=0.0)
        ticks = 0

        async def sleep(_: float) -> None:
            nonlocal ticks
            ticks += 1
            if ticks > 2:
                raise asyncio.CancelledError
            await asyncio.sleep(0)

        with pytest.raises(asyncio.CancelledError):
            await sweep_forever(registry, retention_seconds=0.0, interval_seconds=300.0, sleep=sleep)

        assert len(registry) == 0
