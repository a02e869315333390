"""Tests for the message persistence hand-off and client wiring."""
import json

import httpx
import pytest

from promptiq.core.config import Settings
from promptiq.stream.client import create_stream_client
from promptiq.stream.persistence import HttpMessageStore, MessageRecord


class TestMessageRecord:
    """Tests for MessageRecord payloads."""

    def test_user_payload_omits_tokens(self):
        """Test token keys are omitted when unknown."""
        record = MessageRecord(thread_id="t-1", role="user", content="hi", model="m")
        assert record.to_payload() == {
            "content": "hi",
            "threadId": "t-1",
            "role": "user",
            "model": "m",
        }

    def test_assistant_payload_with_tokens(self):
        """Test token counts are sent, including zero."""
        record = MessageRecord(
            thread_id="t-1",
            role="assistant",
            content="hello",
            model="m",
            input_tokens=3,
            output_tokens=0,
        )
        payload = record.to_payload()
        assert payload["inputTokens"] == 3
        assert payload["outputTokens"] == 0


class TestHttpMessageStore:
    """Tests for HttpMessageStore."""

    @pytest.mark.asyncio
    async def test_posts_record(self):
        """Test the store posts the record to the messages endpoint."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"message": {}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test") as client:
            await HttpMessageStore(client).save(MessageRecord(thread_id="t-1", role="user", content="hi"))

        assert seen == [("POST", "/api/messages", {"content": "hi", "threadId": "t-1", "role": "user", "model": None})]

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        """Test a failed save raises."""
        transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"error": "Database error"}))
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            with pytest.raises(httpx.HTTPStatusError):
                await HttpMessageStore(client).save(MessageRecord(thread_id="t-1", role="user", content="hi"))


class TestCreateStreamClient:
    """Tests for create_stream_client."""

    @pytest.mark.asyncio
    async def test_bearer_header_and_timeouts(self):
        """Test client auth header and default timeouts."""
        settings = Settings(upstream_timeout=5.0, stream_read_timeout=None)
        client = create_stream_client("http://server", "tok", settings=settings)
        try:
            assert client.headers["Authorization"] == "Bearer tok"
            assert client.timeout.connect == 5.0
            assert client.timeout.read is None
            assert str(client.base_url) == "http://server"
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_configured_read_timeout(self):
        """Test the configured read timeout is applied."""
        client = create_stream_client("http://server", "tok", settings=Settings(stream_read_timeout=12.5))
        try:
            assert client.timeout.read == 12.5
        finally:
            await client.aclose()
