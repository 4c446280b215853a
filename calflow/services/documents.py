"""Outbound fetch of referenced documents (calibration scrub text)."""

from __future__ import annotations

import logging

import httpx

from calflow.config import get_settings
from calflow.services.errors import UpstreamFetchFailure

logger = logging.getLogger(__name__)

_settings = get_settings()


class DocumentFetcher:
    """Fetches a document body with a bounded timeout.

    Every failure mode surfaces as ``UpstreamFetchFailure``; callers treat it
    as non-fatal.
    """

    def __init__(self, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout if timeout is not None else _settings.documents.fetch_timeout_seconds
        self._transport = transport

    async def fetch_text(self, url: str) -> str:
        if not url.lower().startswith(("http://", "https://")):
            raise UpstreamFetchFailure(f"Not a fetchable document reference: {url!r}")
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True, transport=self._transport,
            ) as client:
                resp = await client.get(url)
                resp.raise_for_status()
        except httpx.TimeoutException as exc:
            raise UpstreamFetchFailure(f"Timed out fetching {url} after {self.timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise UpstreamFetchFailure(f"Fetching {url} returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise UpstreamFetchFailure(f"Fetching {url} failed: {exc}") from exc
        logger.debug("Fetched %d bytes from %s", len(resp.content), url)
        return resp.text
