"""Shared pytest fixtures."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from wavebatch.models.batch import Batch
from wavebatch.registry import InMemoryRegistry
from wavebatch.services.reconciler import CompletionReconciler


async def _yield_only(_delay: float) -> None:
    await asyncio.sleep(0)


@pytest.fixture()
def no_sleep():  # type: ignore[no-untyped-def]
    """Stand-in for asyncio.sleep that never waits but still lets other tasks run."""
    return _yield_only


@pytest.fixture()
def registry() -> InMemoryRegistry:
    return InMemoryRegistry()


@pytest.fixture()
def archive() -> AsyncMock:
    """Mock Airtable archive sink."""
    mock = AsyncMock()
    mock.create.return_value = "rec123"
    return mock


@pytest.fixture()
def reconciler(registry: InMemoryRegistry, archive: AsyncMock) -> CompletionReconciler:
    return CompletionReconciler(registry, archive, finalize_attempts=3, sleep=_yield_only)


@pytest.fixture()
def make_batch(registry: InMemoryRegistry):  # type: ignore[no-untyped-def]
    """Create a batch with *count* expected units in the registry."""

    def _make(count: int, run_id: str = "run-1") -> Batch:
        return registry.create_batch(Batch(id=run_id, archive_record_id="rec123", expected_count=count, prompt="a cat"))

    return _make


@pytest.fixture()
def final_updates(archive: AsyncMock):  # type: ignore[no-untyped-def]
    """Field dicts of archive.update calls that carried the finalization marker."""

    def _final() -> list[dict[str, object]]:
        return [c.args[1] for c in archive.update.call_args_list if "Completed At" in c.args[1]]

    return _final
