"""Image downloader: turns image URLs into base64 data URLs for submission."""

import base64
import logging

import httpx

from wavebatch.services.types import PreparedImages

logger = logging.getLogger(__name__)

_DEFAULT_CONTENT_TYPE = "image/jpeg"


class InputPreparationError(Exception):
    """Raised when an input image cannot be fetched or encoded."""


class ImageFetcher:
    """Download images and encode them as data URLs."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def to_data_url(self, url: str) -> str:
        """Return ``data:<content-type>;base64,<payload>`` for the image at *url*.

        Raises InputPreparationError if the request fails.
        """
        try:
            response = await self._client.get(url, follow_redirects=True)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.error("failed to fetch image %s: %s", url, exc)
            raise InputPreparationError(f"Failed to fetch image {url}: {exc}") from exc

        content_type = response.headers.get("content-type", "").split(";")[0].strip() or _DEFAULT_CONTENT_TYPE
        payload = base64.b64encode(response.content).decode("ascii")
        return f"data:{content_type};base64,{payload}"

    async def prepare(self, subject_url: str, reference_urls: list[str]) -> PreparedImages:
        """Encode the subject and every reference image; any failure aborts the whole set."""
        subject = await self.to_data_url(subject_url)
        references = [await self.to_data_url(url) for url in reference_urls]
        return PreparedImages(subject=subject, references=references)
