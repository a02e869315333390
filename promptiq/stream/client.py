"""HTTP client wiring for talking to a PromptIQ server."""
import httpx

from promptiq.core.config import Settings, get_settings


def create_stream_client(
    base_url: str,
    token: str,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """
    Build an authenticated client for the chat and message endpoints.

    Reads are unbounded unless ``stream_read_timeout`` is configured, so a
    stalled stream only ends when the user aborts.
    """
    settings = settings or get_settings()
    return httpx.AsyncClient(
        base_url=base_url,
        headers={"Authorization": f"Bearer {token}"},
        timeout=httpx.Timeout(
            settings.upstream_timeout,
            read=settings.stream_read_timeout,
        ),
        transport=transport,
    )
