"""
Unit tests for the chat stream controller.
Drives full sends against a mocked proxy endpoint.
"""
import asyncio
import json
import logging
from collections.abc import Callable

import httpx
import pytest
import pytest_asyncio

from promptiq.core.config import Settings
from promptiq.core.exceptions import SendInProgressError
from promptiq.stream.controller import ChatStreamController
from promptiq.stream.conversation import ChatMessage, Conversation, Role
from promptiq.stream.persistence import MessageRecord
from promptiq.stream.session import ErrorKind, StreamState
from promptiq.stream.sniffer import GENERIC_ERROR_MESSAGE

THREAD_ID = "thread-1"


class RecordingStore:
    def __init__(self):
        self.records: list[MessageRecord] = []

    async def save(self, record: MessageRecord) -> None:
        self.records.append(record)


class FailingStore:
    async def save(self, record: MessageRecord) -> None:
        raise RuntimeError("database unavailable")


def event_stream(chunks: list[bytes], hang: asyncio.Event | None = None, after: Callable | None = None):
    """Async body yielding ``chunks``, then optionally blocking on ``hang``."""
    async def body():
        for chunk in chunks:
            yield chunk
            if after is not None:
                after(chunk)
        if hang is not None:
            await hang.wait()
    return body()


def sse_response(chunks, **kwargs) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"content-type": "text/event-stream"},
        content=event_stream(chunks, **kwargs),
    )


async def wait_until(predicate, timeout: float = 1.0) -> None:
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def stream_settings() -> Settings:
    return Settings(stream_flush_interval=0.01, default_model="default/model")


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def requests_seen() -> list[dict]:
    return []


@pytest_asyncio.fixture
async def make_controller(stream_settings, store, requests_seen):
    """Factory wiring a controller to a mock proxy answering with ``respond()``."""
    clients: list[httpx.AsyncClient] = []

    def _make(respond, conversation: Conversation | None = None, message_store=store) -> ChatStreamController:
        async def handler(request: httpx.Request) -> httpx.Response:
            requests_seen.append(json.loads(request.content))
            return respond()

        client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            base_url="http://test",
        )
        clients.append(client)
        return ChatStreamController(
            client,
            THREAD_ID,
            conversation=conversation,
            store=message_store,
            settings=stream_settings,
        )

    yield _make

    for client in clients:
        await client.aclose()


class TestSuccessfulSend:
    """Tests for a stream that completes normally."""

    @pytest.mark.asyncio
    async def test_end_to_end(self, make_controller, store, requests_seen, sse_chunk, done_frame):
        """Test a full stream ends with the exact text, model and usage."""
        chunks = [
            b": OPENROUTER PROCESSING\n\n",
            sse_chunk("The ", model="provider/actual"),
            sse_chunk("answer "),
            sse_chunk("is 42."),
            sse_chunk(usage={"prompt_tokens": 12, "completion_tokens": 5, "total_tokens": 17}),
            done_frame,
        ]
        controller = make_controller(lambda: sse_response(chunks))

        outcome = await controller.send("What is the answer?", model="requested/model")
        await controller.drain()

        assert outcome.state is StreamState.SUCCESS
        assert outcome.content == "The answer is 42."
        assert outcome.model == "provider/actual"
        assert outcome.usage.total_tokens == 17
        assert controller.state is StreamState.IDLE
        assert not controller.is_sending

        user, assistant = controller.conversation.messages
        assert user.role is Role.USER
        assert user.content == "What is the answer?"
        assert assistant.content == "The answer is 42."
        assert assistant.model == "provider/actual"
        assert assistant.input_tokens == 12
        assert assistant.output_tokens == 5

        assert requests_seen == [{
            "model": "requested/model",
            "messages": [{"role": "user", "content": "What is the answer?"}],
            "threadId": THREAD_ID,
        }]

        assert [r.role for r in store.records] == ["user", "assistant"]
        saved = store.records[1]
        assert saved.content == "The answer is 42."
        assert saved.model == "provider/actual"
        assert saved.input_tokens == 12
        assert saved.output_tokens == 5

    @pytest.mark.asyncio
    async def test_history_uses_prior_messages(self, make_controller, requests_seen, sse_chunk, done_frame):
        """Test the request carries the prior conversation."""
        conversation = Conversation([
            ChatMessage(role=Role.USER, content="hi", model="m"),
            ChatMessage(role=Role.ASSISTANT, content="hello", model="m"),
        ])
        controller = make_controller(lambda: sse_response([sse_chunk("ok"), done_frame]), conversation)

        await controller.send("again")

        assert requests_seen[0]["model"] == "m"
        assert requests_seen[0]["messages"] == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "user", "content": "again"},
        ]

    @pytest.mark.asyncio
    async def test_arbitrary_chunk_boundaries(self, make_controller, sse_chunk, done_frame):
        """Frames and multi-byte characters split anywhere still assemble."""
        body = b"".join([sse_chunk("Prix: "), sse_chunk("12 €"), sse_chunk(" ✓"), done_frame])
        pieces = [body[i:i + 3] for i in range(0, len(body), 3)]
        controller = make_controller(lambda: sse_response(pieces))

        outcome = await controller.send("price?")

        assert outcome.state is StreamState.SUCCESS
        assert outcome.content == "Prix: 12 € ✓"

    @pytest.mark.asyncio
    async def test_stream_without_done(self, make_controller, sse_chunk):
        """Test a stream ending without [DONE] still succeeds."""
        controller = make_controller(lambda: sse_response([sse_chunk("partial but fine")]))
        outcome = await controller.send("x")
        assert outcome.state is StreamState.SUCCESS
        assert outcome.content == "partial but fine"

    @pytest.mark.asyncio
    async def test_cr_terminated_stream_without_done(self, make_controller, sse_chunk):
        """Test the last delta of a CR-only stream that ends without [DONE] is kept."""
        chunks = [sse_chunk(part).replace(b"\n", b"\r") for part in ["The ", "end."]]
        controller = make_controller(lambda: sse_response(chunks))
        outcome = await controller.send("x")
        assert outcome.state is StreamState.SUCCESS
        assert outcome.content == "The end."

    @pytest.mark.asyncio
    async def test_malformed_records_skipped(self, make_controller, sse_chunk, done_frame):
        """Test malformed records do not stop the stream."""
        chunks = [b"bogus: field\n\n", b"data: not json\n\n", sse_chunk("fine"), done_frame]
        controller = make_controller(lambda: sse_response(chunks))
        outcome = await controller.send("x")
        assert outcome.content == "fine"

    @pytest.mark.asyncio
    async def test_empty_reply_not_persisted(self, make_controller, store, done_frame):
        """Test an empty reply is not saved."""
        controller = make_controller(lambda: sse_response([done_frame]))
        outcome = await controller.send("x")
        await controller.drain()
        assert outcome.state is StreamState.SUCCESS
        assert [r.role for r in store.records] == ["user"]

    @pytest.mark.asyncio
    async def test_blank_content_ignored(self, make_controller, requests_seen):
        """Test blank input sends nothing."""
        controller = make_controller(lambda: sse_response([]))
        assert await controller.send("   ") is None
        assert len(controller.conversation) == 0
        assert requests_seen == []

    @pytest.mark.asyncio
    async def test_selected_model_follows_last_message(self, make_controller, sse_chunk, done_frame):
        """Test the next send preselects the effective model."""
        controller = make_controller(lambda: sse_response([sse_chunk("x", model="provider/actual"), done_frame]))
        assert controller.selected_model() == "default/model"
        await controller.send("x", model="requested/model")
        assert controller.selected_model() == "provider/actual"


class TestErrors:
    """Tests for terminal error handling."""

    @pytest.mark.asyncio
    async def test_embedded_error_stops_reading(self, make_controller, store, sse_chunk):
        """Test an embedded JSON error ends the send with no further reads."""
        reads = []
        error = b'{"error":{"message":"rate limited","code":429}}'
        controller = make_controller(
            lambda: sse_response([error, sse_chunk("never shown")], after=reads.append)
        )

        outcome = await controller.send("x")
        await controller.drain()

        assert outcome.state is StreamState.ERROR
        assert outcome.error_kind is ErrorKind.EMBEDDED
        assert outcome.error_message == "rate limited"
        assert controller.conversation.messages[-1].content == "❌ rate limited"
        assert reads == []
        assert [r.role for r in store.records] == ["user"]

    @pytest.mark.asyncio
    async def test_http_error(self, make_controller):
        """Test a non-2xx response shows the extracted message."""
        controller = make_controller(lambda: httpx.Response(404, json={"error": "Thread not found"}))

        outcome = await controller.send("x")

        assert outcome.error_kind is ErrorKind.HTTP
        assert outcome.status_code == 404
        assert outcome.content == "❌ Request failed (404): Thread not found"
        assert controller.conversation.messages[-1].content == outcome.content

    @pytest.mark.asyncio
    async def test_http_error_with_empty_body(self, make_controller):
        """Test a non-2xx response without a body shows the generic message."""
        controller = make_controller(lambda: httpx.Response(502))
        outcome = await controller.send("x")
        assert outcome.content == f"❌ Request failed (502): {GENERIC_ERROR_MESSAGE}"

    @pytest.mark.asyncio
    async def test_no_stream(self, make_controller):
        """Test a 2xx response without bytes is an error."""
        controller = make_controller(lambda: httpx.Response(200, content=b""))
        outcome = await controller.send("x")
        assert outcome.error_kind is ErrorKind.NO_STREAM
        assert outcome.content == "❌ No response stream received."

    @pytest.mark.asyncio
    async def test_no_content_status(self, make_controller):
        """Test a 204 response is an error."""
        controller = make_controller(lambda: httpx.Response(204))
        outcome = await controller.send("x")
        assert outcome.error_kind is ErrorKind.NO_STREAM

    @pytest.mark.asyncio
    async def test_transport_error(self, make_controller):
        """Test a connection failure shows the generic message."""
        def refuse():
            raise httpx.ConnectError("connection refused")

        controller = make_controller(refuse)
        outcome = await controller.send("x")

        assert outcome.error_kind is ErrorKind.TRANSPORT
        assert outcome.content == f"❌ {GENERIC_ERROR_MESSAGE}"
        assert controller.state is StreamState.IDLE

    @pytest.mark.asyncio
    async def test_read_error_mid_stream(self, make_controller, sse_chunk):
        """Test a dropped connection mid-stream is a transport error."""
        async def body():
            yield sse_chunk("Hal")
            raise httpx.ReadError("connection reset")

        controller = make_controller(
            lambda: httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())
        )
        outcome = await controller.send("x")

        assert outcome.error_kind is ErrorKind.TRANSPORT
        assert controller.conversation.messages[-1].content == f"❌ {GENERIC_ERROR_MESSAGE}"


class TestAbort:
    """Tests for user-initiated cancellation."""

    @pytest.mark.asyncio
    async def test_abort_keeps_partial_text(self, make_controller, store, stream_settings, sse_chunk):
        """Test abort keeps the partial reply and appends the marker."""
        hang = asyncio.Event()
        controller = make_controller(lambda: sse_response([sse_chunk("Hel"), sse_chunk("lo")], hang=hang))

        task = asyncio.create_task(controller.send("x"))
        await wait_until(lambda: controller._session is not None and controller._session.accumulator.text == "Hello")

        controller.abort()
        outcome = await task
        await controller.drain()

        expected = "Hello" + stream_settings.stream_stopped_marker
        assert outcome.state is StreamState.ABORTED
        assert outcome.content == expected
        assert controller.conversation.messages[-1].content == expected
        assert controller.state is StreamState.IDLE
        assert [r.role for r in store.records] == ["user"]

    @pytest.mark.asyncio
    async def test_double_abort(self, make_controller, stream_settings, sse_chunk):
        """Test aborting twice appends the marker once."""
        hang = asyncio.Event()
        controller = make_controller(lambda: sse_response([sse_chunk("Hi")], hang=hang))

        task = asyncio.create_task(controller.send("x"))
        await wait_until(lambda: controller._session is not None and controller._session.accumulator.text == "Hi")

        controller.abort()
        controller.abort()
        outcome = await task
        controller.abort()

        assert outcome.content == "Hi" + stream_settings.stream_stopped_marker
        assert controller.conversation.messages[-1].content.count("stopped by user") == 1

    @pytest.mark.asyncio
    async def test_abort_when_idle(self, make_controller):
        """Test abort without a send is a no-op."""
        controller = make_controller(lambda: sse_response([]))
        controller.abort()
        assert controller.state is StreamState.IDLE

    @pytest.mark.asyncio
    async def test_outer_cancel_propagates(self, make_controller):
        """Test cancelling the caller is not treated as an abort."""
        hang = asyncio.Event()
        controller = make_controller(lambda: sse_response([b": ping\n\n"], hang=hang))

        task = asyncio.create_task(controller.send("x"))
        await wait_until(lambda: controller._session is not None and controller._session.bytes_received > 0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert not controller.is_sending


class TestSingleFlight:
    """At most one send per controller."""

    @pytest.mark.asyncio
    async def test_second_send_rejected(self, make_controller, sse_chunk):
        """Test a send while streaming is rejected."""
        hang = asyncio.Event()
        controller = make_controller(lambda: sse_response([sse_chunk("a")], hang=hang))

        task = asyncio.create_task(controller.send("first"))
        await wait_until(lambda: controller.is_sending and controller._session.bytes_received > 0)

        with pytest.raises(SendInProgressError):
            await controller.send("second")
        assert len(controller.conversation) == 2

        controller.abort()
        await task

    @pytest.mark.asyncio
    async def test_send_after_completion(self, make_controller, sse_chunk, done_frame):
        """Test sending again after a send completes."""
        controller = make_controller(lambda: sse_response([sse_chunk("ok"), done_frame]))
        await controller.send("one")
        await controller.send("two")
        assert len(controller.conversation) == 4


class TestPersistence:
    """Tests for the fire-and-forget persistence hand-off."""

    @pytest.mark.asyncio
    async def test_failure_logged_not_raised(self, make_controller, caplog, sse_chunk, done_frame):
        """Test save failures are logged and the send still succeeds."""
        controller = make_controller(
            lambda: sse_response([sse_chunk("ok"), done_frame]),
            message_store=FailingStore(),
        )

        with caplog.at_level(logging.WARNING, logger="promptiq"):
            outcome = await controller.send("x")
            await controller.drain()

        assert outcome.state is StreamState.SUCCESS
        assert outcome.content == "ok"
        failures = [r for r in caplog.records if "Failed to save" in r.getMessage()]
        assert len(failures) == 2

    @pytest.mark.asyncio
    async def test_no_store(self, make_controller, sse_chunk, done_frame):
        """Test sending without a store."""
        controller = make_controller(lambda: sse_response([sse_chunk("ok"), done_frame]), message_store=None)
        outcome = await controller.send("x")
        await controller.drain()
        assert outcome.content == "ok"
