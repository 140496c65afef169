"""Airtable archive sink: one record per batch, updated as jobs report back."""

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from wavebatch.models.batch import BatchSnapshot

logger = logging.getLogger(__name__)

MODEL_NAME = "WaveSpeed Seedream v4.5"


class ArchiveError(Exception):
    """Raised when an Airtable create or update call fails."""


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def initial_fields(run_id: str, prompt: str, width: int, height: int) -> dict[str, Any]:
    now = _now_iso()
    return {
        "Prompt": prompt,
        "Model": MODEL_NAME,
        "Size": f"{width}x{height}",
        "Status": "processing",
        "Run ID": run_id,
        "Created At": now,
        "Last Update": now,
        "Request IDs": "",
        "Seen IDs": "",
        "Failed IDs": "",
    }


def snapshot_fields(snapshot: BatchSnapshot) -> dict[str, Any]:
    """Fields describing a batch's progress; adds completion data once finalized."""
    fields: dict[str, Any] = {
        "Request IDs": ",".join(snapshot.request_ids),
        "Seen IDs": ",".join(snapshot.seen_ids),
        "Failed IDs": ",".join(snapshot.failed_ids),
        "Status": snapshot.status,
        "Last Update": _now_iso(),
    }
    if snapshot.finalized:
        completed_at = snapshot.finalized_at or datetime.now(UTC)
        fields["Completed At"] = completed_at.isoformat()
    if snapshot.outputs:
        fields["Output"] = [{"url": url} for url in snapshot.outputs]
        fields["Output URL"] = snapshot.outputs[0]
    return fields


class AirtableArchive:
    """Creates and patches batch records in an Airtable table."""

    def __init__(self, client: httpx.AsyncClient, table_url: str, token: str) -> None:
        self._client = client
        self._table_url = table_url
        self._headers = {"Authorization": f"Bearer {token}"}

    async def create(self, fields: dict[str, Any]) -> str:
        """Create a record and return its id.

        Raises ArchiveError on any HTTP or transport failure.
        """
        try:
            response = await self._client.post(
                self._table_url,
                headers=self._headers,
                json={"fields": fields, "typecast": True},
            )
            response.raise_for_status()
            record_id: str = response.json()["id"]
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise ArchiveError(f"Airtable create error: {exc}") from exc
        logger.info("created archive record %s", record_id)
        return record_id

    async def update(self, record_id: str, fields: dict[str, Any]) -> None:
        """Patch *fields* onto *record_id*. Raises ArchiveError on failure."""
        try:
            response = await self._client.patch(
                f"{self._table_url}/{record_id}",
                headers=self._headers,
                json={"fields": fields, "typecast": True},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ArchiveError(f"Airtable update error for {record_id}: {exc}") from exc
        logger.info("archive record %s updated", record_id)
