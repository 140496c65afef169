"""WaveSpeed generation engine client: submit edits and query their results."""

import logging
from typing import Literal

import httpx

from wavebatch.services.types import PreparedImages, RemoteResult

logger = logging.getLogger(__name__)

_NUM_INFERENCE_STEPS = 30
_GUIDANCE_SCALE = 7.5

_KNOWN_STATUSES = {"created", "processing", "completed", "failed"}


class SubmissionError(Exception):
    """Raised when the engine rejects or fails to accept a submission."""


class EngineError(Exception):
    """Raised when a result query fails; callers treat it as transient."""


def build_payload(
    prompt: str,
    images: PreparedImages,
    width: int,
    height: int,
    webhook_url: str,
) -> dict[str, object]:
    image_entries: list[dict[str, str]] = [{"image": images["subject"], "type": "subject"}]
    image_entries.extend({"image": ref, "type": "reference"} for ref in images["references"])
    return {
        "prompt": prompt,
        "images": image_entries,
        "width": width,
        "height": height,
        "num_inference_steps": _NUM_INFERENCE_STEPS,
        "guidance_scale": _GUIDANCE_SCALE,
        "enable_base64_output": True,
        "webhook": webhook_url,
    }


class WaveSpeedClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        submit_url: str,
        result_url: str,
        webhook_url: str,
    ) -> None:
        self._client = client
        self._headers = {"Authorization": f"Bearer {api_key}"}
        self._submit_url = submit_url
        self._result_url = result_url.rstrip("/")
        self._webhook_url = webhook_url

    async def submit(self, prompt: str, images: PreparedImages, width: int, height: int) -> str:
        """Submit one generation task and return the engine's request id.

        Raises SubmissionError on HTTP failure or a malformed response.
        """
        payload = build_payload(prompt, images, width, height, self._webhook_url)
        try:
            response = await self._client.post(self._submit_url, headers=self._headers, json=payload)
        except httpx.HTTPError as exc:
            raise SubmissionError(f"WaveSpeed submission failed: {exc}") from exc
        if response.is_error:
            raise SubmissionError(f"WaveSpeed API error ({response.status_code}): {response.text}")
        try:
            request_id = str(response.json()["data"]["id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise SubmissionError(f"WaveSpeed response missing request id: {exc}") from exc
        return request_id

    async def get_result(self, request_id: str) -> RemoteResult:
        """Return the current remote status of *request_id*.

        Raises EngineError on transport failures, HTTP errors and unreadable bodies.
        """
        try:
            response = await self._client.get(f"{self._result_url}/{request_id}/result", headers=self._headers)
            response.raise_for_status()
            data = response.json()["data"]
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            raise EngineError(f"Polling error for {request_id}: {exc}") from exc
        if not isinstance(data, dict):
            raise EngineError(f"Polling error for {request_id}: unexpected data {data!r}")

        status = str(data.get("status", ""))
        if status not in _KNOWN_STATUSES:
            logger.warning("task %s reported unrecognised status %r", request_id, status)
        outputs = data.get("outputs") or data.get("output") or []
        return RemoteResult(
            status=_normalise_status(status),
            outputs=[str(o) for o in outputs] if isinstance(outputs, list) else [],
        )


def _normalise_status(status: str) -> Literal["pending", "completed", "failed"]:
    if status == "completed":
        return "completed"
    if status == "failed":
        return "failed"
    return "pending"
