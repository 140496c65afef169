"""Periodic eviction of finalized batches from the registry."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from wavebatch.registry import Registry

logger = logging.getLogger(__name__)


async def sweep_forever(
    registry: Registry,
    retention_seconds: float,
    interval_seconds: float,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Evict batches finalized more than *retention_seconds* ago, every *interval_seconds*."""
    logger.info("retention sweeper started (retention=%ss, interval=%ss)", retention_seconds, interval_seconds)
    while True:
        await sleep(interval_seconds)
        try:
            registry.evict_finalized(retention_seconds)
        except Exception as exc:
            logger.error("retention sweep failed: %s", exc)
