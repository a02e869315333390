"""
Upstream inference provider proxy.

Forwards a chat completion request with ``stream: true`` to an
OpenAI-compatible endpoint (OpenRouter by default) and hands the raw
response back unread so the caller can relay its bytes.
"""
from typing import Any

import httpx

from promptiq.core.config import Settings
from promptiq.core.exceptions import UpstreamError
from promptiq.core.logging import get_logger

logger = get_logger("upstream")


class UpstreamService:
    """Client for the upstream chat completions endpoint."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = settings.upstream_url
        self.api_key = settings.upstream_api_key
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(None, connect=settings.upstream_timeout),
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def open_stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
    ) -> httpx.Response:
        """
        Send a streaming chat completion request.

        The response body is left unread; callers must ``aclose()`` it.

        Raises:
            UpstreamError: If the upstream cannot be reached.
        """
        request = self.client.build_request(
            "POST",
            self.url,
            headers=self._headers(),
            json={
                "model": model,
                "messages": messages,
                "stream": True,
            },
        )
        try:
            return await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error(f"Upstream request for {model} failed: {e}")
            raise UpstreamError(
                "Failed to reach the upstream provider",
                details={"model": model},
            ) from e

    async def close(self) -> None:
        """Close the underlying client if this service created it."""
        if self._owns_client:
            await self.client.aclose()
