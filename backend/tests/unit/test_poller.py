"""Unit tests for Poller."""

from unittest.mock import AsyncMock

import httpx
import pytest

from wavebatch.services.backoff import backoff_delays
from wavebatch.services.poller import Poller, PollPolicy
from wavebatch.services.reconciler import Completed
from wavebatch.services.supervisor import TaskSupervisor
from wavebatch.services.types import RemoteResult
from wavebatch.services.wavespeed import EngineError, WaveSpeedClient

_PENDING = RemoteResult(status="pending", outputs=[])


def _done(*outputs: str) -> RemoteResult:
    return RemoteResult(status="completed", outputs=list(outputs))


def _make_poller(registry, reconciler, engine: AsyncMock, no_sleep, max_attempts: int = 5) -> Poller:  # type: ignore[no-untyped-def]
    policy = PollPolicy(max_attempts=max_attempts, initial_delay=7.0, max_delay=15.0, backoff_factor=1.1)
    return Poller(engine, reconciler, registry, policy, sleep=no_sleep)


class TestPollUntilDone:
    @pytest.mark.asyncio
    async def test_reports_completion_with_outputs(self, registry, reconciler, make_batch, no_sleep) -> None:
        make_batch(1)
        await reconciler.register_job("run-1", "a")
        engine = AsyncMock()
        engine.get_result.side_effect = [_PENDING, _PENDING, _done("https://cdn/a.png")]

        ok = await _make_poller(registry, reconciler, engine, no_sleep).poll_until_done("a")

        assert ok is True
        assert engine.get_result.await_count == 3
        job = registry.get_job("a")
        assert job.status == "completed"
        assert job.retries == 2
        assert registry.get_batch("run-1").outputs == ["https://cdn/a.png"]

    @pytest.mark.asyncio
    async def test_reports_engine_failure(self, registry, reconciler, make_batch, no_sleep) -> None:
        make_batch(1)
        await reconciler.register_job("run-1", "a")
        engine = AsyncMock()
        engine.get_result.return_value = RemoteResult(status="failed", outputs=[])

        ok = await _make_poller(registry, reconciler, engine, no_sleep).poll_until_done("a")

        assert ok is False
        assert registry.get_job("a").status == "failed"
        assert registry.get_batch("run-1").failed_ids == ["a"]

    @pytest.mark.asyncio
    async def test_retries_transient_errors_with_same_budget(self, registry, reconciler, make_batch, no_sleep) -> None:
        make_batch(1)
        await reconciler.register_job("run-1", "a")
        engine = AsyncMock()
        engine.get_result.side_effect = [
            EngineError("503"),
            httpx.ConnectTimeout("slow"),
            _done("https://cdn/a.png"),
        ]

        ok = await _make_poller(registry, reconciler, engine, no_sleep).poll_until_done("a")

        assert ok is True
        assert registry.get_job("a").retries == 2

    @pytest.mark.asyncio
    async def test_fails_job_once_budget_is_exhausted(
        self, registry, reconciler, make_batch, no_sleep, final_updates
    ) -> None:
        make_batch(1)
        await reconciler.register_job("run-1", "a")
        engine = AsyncMock()
        engine.get_result.return_value = _PENDING

        ok = await _make_poller(registry, reconciler, engine, no_sleep, max_attempts=4).poll_until_done("a")

        assert ok is False
        assert engine.get_result.await_count == 4
        job = registry.get_job("a")
        assert job.status == "failed"
        assert job.retries == 4
        batch = registry.get_batch("run-1")
        assert batch.failed_ids == ["a"]
        assert len(final_updates()) == 1

    @pytest.mark.asyncio
    async def test_errors_on_every_attempt_still_end_in_failure(
        self, registry, reconciler, make_batch, no_sleep
    ) -> None:
        make_batch(1)
        await reconciler.register_job("run-1", "a")
        engine = AsyncMock()
        engine.get_result.side_effect = EngineError("down")

        ok = await _make_poller(registry, reconciler, engine, no_sleep, max_attempts=3).poll_until_done("a")

        assert ok is False
        assert registry.get_job("a").status == "failed"

    @pytest.mark.asyncio
    async def test_sleeps_follow_bounded_backoff(self, registry, reconciler, make_batch) -> None:
        make_batch(1)
        await reconciler.register_job("run-1", "a")
        engine = AsyncMock()
        engine.get_result.return_value = _PENDING
        sleep = AsyncMock()
        policy = PollPolicy(max_attempts=5, initial_delay=10.0, max_delay=15.0, backoff_factor=1.5)

        await Poller(engine, reconciler, registry, policy, sleep=sleep).poll_until_done("a")

        delays = [c.args[0] for c in sleep.await_args_list]
        assert delays == [10.0, 15.0, 15.0, 15.0]

    @pytest.mark.asyncio
    async def test_stops_without_querying_when_webhook_already_won(
        self, registry, reconciler, make_batch, no_sleep
    ) -> None:
        make_batch(2)
        await reconciler.register_job("run-1", "a")
        await reconciler.register_job("run-1", "b")
        await reconciler.report_outcome("a", Completed(outputs=["https://cdn/a.png"]))
        engine = AsyncMock()

        ok = await _make_poller(registry, reconciler, engine, no_sleep).poll_until_done("a")

        assert ok is True
        engine.get_result.assert_not_awaited()
        assert registry.get_batch("run-1").seen_ids == ["a"]

    @pytest.mark.asyncio
    async def test_gives_up_quietly_on_unknown_job(self, registry, reconciler, no_sleep) -> None:
        engine = AsyncMock()
        engine.get_result.return_value = _PENDING

        ok = await _make_poller(registry, reconciler, engine, no_sleep).poll_until_done("ghost")

        assert ok is False
        engine.get_result.assert_awaited_once()


class TestPollerFaults:
    @pytest.mark.asyncio
    async def test_unexpected_error_fails_the_job(
        self, registry, reconciler, make_batch, no_sleep, final_updates
    ) -> None:
        make_batch(1)
        await reconciler.register_job("run-1", "a")
        engine = AsyncMock()
        engine.get_result.side_effect = RuntimeError("bad state")

        ok = await _make_poller(registry, reconciler, engine, no_sleep).poll_until_done("a")

        assert ok is False
        assert registry.get_job("a").status == "failed"
        batch = registry.get_batch("run-1")
        assert batch.finalized is True
        assert batch.failed_ids == ["a"]
        assert len(final_updates()) == 1

    @pytest.mark.asyncio
    async def test_malformed_engine_body_is_retried_then_times_out(
        self, registry, reconciler, make_batch, no_sleep
    ) -> None:
        make_batch(1)
        await reconciler.register_job("run-1", "a")
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"data": None})))
        engine = WaveSpeedClient(
            http,
            api_key="k",
            submit_url="https://engine.test/edit",
            result_url="https://engine.test/predictions",
            webhook_url="https://me.test/webhooks/wavespeed",
        )
        supervisor = TaskSupervisor()

        poller = _make_poller(registry, reconciler, engine, no_sleep, max_attempts=3)
        supervisor.spawn(poller.poll_until_done("a"), name="poll-a")
        await supervisor.join()

        job = registry.get_job("a")
        assert job.status == "failed"
        assert job.retries == 3
        assert registry.get_batch("run-1").finalized is True


class TestBackoffDelays:
    def test_grows_then_caps(self) -> None:
        delays = backoff_delays(7.0, 1.1, 15.0)

        first = [next(delays) for _ in range(10)]

        assert first[0] == 7.0
        assert first[1] == pytest.approx(7.7)
        assert all(b >= a for a, b in zip(first, first[1:]))
        assert max(first) <= 15.0
        assert [next(delays) for _ in range(3)] == [15.0, 15.0, 15.0]
