"""Webhook ingest: maps engine push notifications onto reconciler outcomes."""

import logging

from wavebatch.registry import NotFoundError, Registry
from wavebatch.schemas.webhook import WebhookPayload
from wavebatch.services.reconciler import Completed, CompletionReconciler, Failed, Outcome, UnknownJobError

logger = logging.getLogger(__name__)


def outcome_for(payload: WebhookPayload) -> Outcome | None:
    """Return the terminal outcome a payload describes, or None if it is not terminal."""
    if payload.status == "completed" and payload.output:
        return Completed(outputs=list(payload.output))
    if payload.status == "failed":
        return Failed(reason=payload.error or "engine reported failure")
    return None


class WebhookIngest:
    def __init__(self, reconciler: CompletionReconciler, registry: Registry) -> None:
        self._reconciler = reconciler
        self._registry = registry

    async def handle(self, payload: WebhookPayload) -> bool:
        """Apply a webhook delivery. Returns True if it changed any state.

        Duplicate and non-terminal deliveries return False.
        Raises UnknownJobError if the job id is not registered.
        """
        logger.info("webhook for task %s: %s", payload.id, payload.status)
        try:
            self._registry.get_job(payload.id)
        except NotFoundError as exc:
            logger.warning("webhook for unknown task %s", payload.id)
            raise UnknownJobError(f"Task {payload.id} not found") from exc

        outcome = outcome_for(payload)
        if outcome is None:
            return False
        return await self._reconciler.report_outcome(payload.id, outcome)
