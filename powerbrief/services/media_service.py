"""
MediaService - downloads reference media (images, videos) for multimodal prompts.
"""

import logging
import mimetypes
from typing import Optional
from urllib.parse import urlparse

import httpx

from ..core.config import Config
from ..core.exceptions import MediaFetchError
from .llm_providers import MediaAttachment

logger = logging.getLogger(__name__)


class MediaService:
    """Plain HTTP GET returning bytes and a content type."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout or Config.MEDIA_FETCH_TIMEOUT

    async def fetch(self, url: str, expected_type: Optional[str] = None) -> MediaAttachment:
        """
        Download a media file.

        Args:
            url: Public URL of the media
            expected_type: Caller hint ('image', 'video' or a full mime type)

        Returns:
            MediaAttachment with the bytes and resolved mime type

        Raises:
            MediaFetchError: non-2xx response, network failure or empty body
        """
        logger.info(f"Fetching media: {url}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Media fetch failed for {url}: {e}")
            raise MediaFetchError(f"Failed to fetch media from {url}: {e}") from e

        if not response.content:
            raise MediaFetchError(f"Media at {url} is empty")

        mime_type = _resolve_mime_type(
            response.headers.get("content-type"), url, expected_type
        )
        logger.info(f"Fetched {len(response.content)} bytes ({mime_type}) from {url}")
        return MediaAttachment(data=response.content, mime_type=mime_type, source_url=url)


def _resolve_mime_type(header: Optional[str], url: str, expected_type: Optional[str]) -> str:
    if header:
        mime_type = header.split(";")[0].strip().lower()
        if mime_type and mime_type != "application/octet-stream":
            return mime_type

    guessed, _ = mimetypes.guess_type(urlparse(url).path)
    if guessed:
        return guessed

    if expected_type and "/" in expected_type:
        return expected_type
    if expected_type == "image":
        return "image/jpeg"
    return "video/mp4"
