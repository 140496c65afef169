"""Per-job result poller with bounded exponential backoff."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

import httpx

from wavebatch.registry import NotFoundError, Registry
from wavebatch.services.backoff import backoff_delays
from wavebatch.services.reconciler import Completed, CompletionReconciler, Failed, Outcome, UnknownJobError
from wavebatch.services.types import RemoteResult
from wavebatch.services.wavespeed import EngineError

logger = logging.getLogger(__name__)


class ResultSource(Protocol):
    async def get_result(self, request_id: str) -> RemoteResult: ...


@dataclass(frozen=True)
class PollPolicy:
    max_attempts: int = 170
    initial_delay: float = 7.0
    max_delay: float = 15.0
    backoff_factor: float = 1.1


class Poller:
    """Drives one job to a terminal state by querying the engine.

    The only writes go through the reconciler: outcomes via report_outcome()
    and attempt bookkeeping via record_poll_attempt().
    """

    def __init__(
        self,
        engine: ResultSource,
        reconciler: CompletionReconciler,
        registry: Registry,
        policy: PollPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._engine = engine
        self._reconciler = reconciler
        self._registry = registry
        self._policy = policy or PollPolicy()
        self._sleep = sleep

    async def poll_until_done(self, request_id: str) -> bool:
        """Poll *request_id* until it is terminal or the attempt budget runs out.

        Returns True if the job completed successfully. An unexpected error
        fails the job rather than leaving it non-terminal.
        """
        try:
            return await self._poll(request_id)
        except Exception as exc:
            logger.error("polling for task %s aborted: %s", request_id, exc, exc_info=True)
            await self._report(request_id, Failed(reason=f"poller error: {exc}"))
            return False

    async def _poll(self, request_id: str) -> bool:
        delays = backoff_delays(self._policy.initial_delay, self._policy.backoff_factor, self._policy.max_delay)
        for attempt in range(1, self._policy.max_attempts + 1):
            if self._already_terminal(request_id):
                logger.info("task %s already terminal; polling stopped", request_id)
                return self._completed(request_id)

            try:
                result = await self._engine.get_result(request_id)
            except (EngineError, httpx.HTTPError) as exc:
                logger.warning("polling error for task %s (attempt %d): %s", request_id, attempt, exc)
            else:
                logger.info("task %s: %s", request_id, result["status"])
                if result["status"] == "completed":
                    await self._report(request_id, Completed(outputs=result["outputs"]))
                    return self._completed(request_id)
                if result["status"] == "failed":
                    await self._report(request_id, Failed(reason="engine reported failure"))
                    return False

            try:
                await self._reconciler.record_poll_attempt(request_id)
            except UnknownJobError:
                logger.warning("task %s vanished from registry; polling stopped", request_id)
                return False
            if attempt < self._policy.max_attempts:
                await self._sleep(next(delays))

        logger.warning("task %s did not complete within %d attempts", request_id, self._policy.max_attempts)
        await self._report(request_id, Failed(reason="timeout"))
        return False

    async def _report(self, request_id: str, outcome: Outcome) -> None:
        try:
            await self._reconciler.report_outcome(request_id, outcome)
        except UnknownJobError:
            logger.warning("dropping %s for unknown task %s", type(outcome).__name__, request_id)

    def _already_terminal(self, request_id: str) -> bool:
        try:
            return self._registry.get_job(request_id).is_terminal
        except NotFoundError:
            return False

    def _completed(self, request_id: str) -> bool:
        try:
            return self._registry.get_job(request_id).status == "completed"
        except NotFoundError:
            return False
