"""
Server-Sent Events response support for PromptIQ.
Relays an upstream event stream to the client unchanged.
"""
from collections.abc import AsyncIterator

from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse as StarletteStreamingResponse

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable Nginx buffering
}


class SSEProxyResponse(StarletteStreamingResponse):
    """
    Streaming HTTP response for relayed SSE bytes.

    Chunks are written as they arrive; ``background`` runs once the body has
    been sent (or the client went away) and is where the upstream response
    gets closed.
    """

    def __init__(
        self,
        content: AsyncIterator[bytes],
        status_code: int = 200,
        headers: dict[str, str] | None = None,
        background: BackgroundTask | None = None,
    ):
        sse_headers = dict(SSE_HEADERS)
        if headers:
            sse_headers.update(headers)

        super().__init__(
            content=content,
            status_code=status_code,
            headers=sse_headers,
            media_type="text/event-stream",
            background=background,
        )
