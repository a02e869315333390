"""
Chat stream controller.

Drives one send end to end: optimistic insertion of the user message and an
assistant placeholder, the proxy request, the read loop (sniff, decode,
parse, accumulate, buffer), terminal state resolution and the persistence
hand-off.

States: ``idle -> sending -> (success | aborted | error) -> idle``.
"""
import asyncio

import httpx

from promptiq.core.config import Settings, get_settings
from promptiq.core.exceptions import SendInProgressError
from promptiq.core.logging import LogContext, get_logger, stream_logger
from promptiq.stream.buffer import RenderBuffer
from promptiq.stream.conversation import ChatMessage, Conversation, Role, build_history
from promptiq.stream.persistence import MessageRecord, MessageStore
from promptiq.stream.session import ErrorKind, StreamOutcome, StreamSession, StreamState
from promptiq.stream.sniffer import GENERIC_ERROR_MESSAGE, extract_http_error_message, sniff_error_chunk

logger = get_logger("stream.controller")

STREAM_PATH = "/api/chat/stream"

ERROR_PREFIX = "❌ "


def format_error(message: str) -> str:
    """Text shown in the assistant bubble for a failed send."""
    return f"{ERROR_PREFIX}{message}"


class ChatStreamController:
    """
    Single-flight chat sender for one thread.

    The controller is the only writer of the conversation while a send is in
    flight. Terminal failures are folded into the placeholder's content and
    the returned :class:`StreamOutcome`; ``send`` does not raise for them.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        thread_id: str,
        conversation: Conversation | None = None,
        store: MessageStore | None = None,
        settings: Settings | None = None,
        stream_path: str = STREAM_PATH,
    ):
        self.client = client
        self.thread_id = thread_id
        self.conversation = conversation if conversation is not None else Conversation()
        self.store = store
        self.settings = settings or get_settings()
        self.stream_path = stream_path
        self._session: StreamSession | None = None
        self._state = StreamState.IDLE
        self._background: set[asyncio.Task] = set()
        self.last_outcome: StreamOutcome | None = None

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def is_sending(self) -> bool:
        return self._session is not None

    def selected_model(self) -> str:
        """Model preselected for the next send."""
        return self.conversation.last_used_model(self.settings.default_model)

    async def send(self, content: str, model: str | None = None) -> StreamOutcome | None:
        """
        Send a user message and stream the assistant reply.

        Returns:
            The terminal outcome, or None when ``content`` is blank.

        Raises:
            SendInProgressError: If another send is still in flight.
        """
        if not content.strip():
            return None
        if self._session is not None:
            raise SendInProgressError(details={"thread_id": self.thread_id})

        model = model or self.selected_model()

        # History is fixed here; deltas arriving later cannot reorder it.
        snapshot = self.conversation.snapshot()
        user_message = ChatMessage(role=Role.USER, content=content, model=model)
        placeholder = ChatMessage(role=Role.ASSISTANT, content="", model=model)
        history = build_history(snapshot, user_message)

        self.conversation.append(user_message, placeholder)

        session = StreamSession(
            thread_id=self.thread_id,
            message_id=placeholder.id,
            requested_model=model,
            buffer=RenderBuffer(
                apply=lambda text: self.conversation.append_content(placeholder.id, text),
                interval=self.settings.stream_flush_interval,
            ),
        )
        self._session = session
        self._state = StreamState.SENDING

        self._persist(
            MessageRecord(
                thread_id=self.thread_id,
                role=Role.USER.value,
                content=content,
                model=model,
            )
        )

        stream_logger.log_stream_start(self.thread_id, model, len(history))
        session.task = asyncio.ensure_future(self._run(session, history))
        try:
            outcome = await session.task
        except asyncio.CancelledError:
            if not session.abort_requested:
                session.task.cancel()
                raise
            # A terminal state reached before the cancel landed wins.
            outcome = session.outcome or self._finish_aborted(session)
        finally:
            self._release(session)

        self.last_outcome = outcome
        return outcome

    def abort(self) -> None:
        """Stop the in-flight send, keeping the partial reply. Safe to repeat."""
        session = self._session
        if session is None or session.task is None:
            return
        session.abort_requested = True
        session.task.cancel()

    async def drain(self) -> None:
        """Wait for outstanding persistence calls."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        self.abort()
        await self.drain()

    async def _run(self, session: StreamSession, history: list[dict[str, str]]) -> StreamOutcome:
        with LogContext(thread_id=self.thread_id, model=session.requested_model):
            try:
                async with self.client.stream(
                    "POST",
                    self.stream_path,
                    json={
                        "model": session.requested_model,
                        "messages": history,
                        "threadId": self.thread_id,
                    },
                ) as response:
                    if not response.is_success:
                        body = await response.aread()
                        message = extract_http_error_message(body.decode("utf-8", errors="replace"))
                        return self._finish_error(
                            session,
                            ErrorKind.HTTP,
                            message,
                            status_code=response.status_code,
                        )

                    if response.status_code == 204:
                        return self._finish_no_stream(session, response.status_code)

                    async for chunk in response.aiter_bytes():
                        if not chunk:
                            continue
                        session.bytes_received += len(chunk)

                        embedded = sniff_error_chunk(chunk, self.settings.stream_error_sniff_limit)
                        if embedded is not None:
                            # Leaving the block closes the response and stops reading.
                            return self._finish_error(
                                session,
                                ErrorKind.EMBEDDED,
                                embedded,
                                status_code=response.status_code,
                            )

                        session.parser.feed(session.decoder.decode(chunk))
                        if session.parser.done:
                            break

                    if session.bytes_received == 0:
                        return self._finish_no_stream(session, response.status_code)

            except httpx.HTTPError as e:
                logger.error(f"Streaming failed: {e!r}")
                return self._finish_error(session, ErrorKind.TRANSPORT, GENERIC_ERROR_MESSAGE)

            if not session.parser.done:
                session.parser.feed(session.decoder.flush())
                session.parser.close()

            return self._finish_success(session)

    def _finish_success(self, session: StreamSession) -> StreamOutcome:
        session.buffer.flush_now()

        accumulator = session.accumulator
        text = accumulator.text
        usage = accumulator.usage

        # Overwrite rather than append so the bubble converges on the full text.
        self.conversation.update(
            session.message_id,
            content=text,
            model=accumulator.effective_model,
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
        )

        if text:
            self._persist(
                MessageRecord(
                    thread_id=self.thread_id,
                    role=Role.ASSISTANT.value,
                    content=text,
                    model=accumulator.effective_model,
                    input_tokens=usage.prompt_tokens,
                    output_tokens=usage.completion_tokens,
                )
            )
        else:
            logger.warning("Stream finished without any assistant text; nothing to save")

        stream_logger.log_stream_end(
            self.thread_id,
            accumulator.effective_model,
            StreamState.SUCCESS.value,
            session.elapsed_ms(),
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            parse_errors=session.parse_errors,
        )
        return self._outcome(session, StreamState.SUCCESS, text)

    def _finish_error(
        self,
        session: StreamSession,
        kind: ErrorKind,
        message: str,
        status_code: int | None = None,
    ) -> StreamOutcome:
        session.buffer.clear()
        if kind is ErrorKind.HTTP and status_code is not None:
            visible = format_error(f"Request failed ({status_code}): {message}")
        else:
            visible = format_error(message)
        self.conversation.set_content(session.message_id, visible)

        stream_logger.log_stream_error(
            self.thread_id,
            session.requested_model,
            message,
            kind=kind.value,
            status_code=status_code,
        )
        return self._outcome(
            session,
            StreamState.ERROR,
            visible,
            error_kind=kind,
            error_message=message,
            status_code=status_code,
        )

    def _finish_no_stream(self, session: StreamSession, status_code: int) -> StreamOutcome:
        return self._finish_error(
            session,
            ErrorKind.NO_STREAM,
            "No response stream received.",
            status_code=status_code,
        )

    def _finish_aborted(self, session: StreamSession) -> StreamOutcome:
        session.buffer.clear()
        # Accumulated text covers both flushed and still-buffered deltas.
        content = session.accumulator.text + self.settings.stream_stopped_marker
        self.conversation.set_content(session.message_id, content)

        stream_logger.log_stream_end(
            self.thread_id,
            session.accumulator.effective_model,
            StreamState.ABORTED.value,
            session.elapsed_ms(),
        )
        return self._outcome(session, StreamState.ABORTED, content)

    def _outcome(
        self,
        session: StreamSession,
        state: StreamState,
        content: str,
        **extra,
    ) -> StreamOutcome:
        self._state = state
        session.outcome = StreamOutcome(
            state=state,
            message_id=session.message_id,
            content=content,
            model=session.accumulator.effective_model,
            usage=session.accumulator.usage,
            **extra,
        )
        return session.outcome

    def _release(self, session: StreamSession) -> None:
        session.buffer.clear()
        session.task = None
        if self._session is session:
            self._session = None
        self._state = StreamState.IDLE

    def _persist(self, record: MessageRecord) -> None:
        if self.store is None:
            return
        task = asyncio.ensure_future(self._save(record))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _save(self, record: MessageRecord) -> None:
        try:
            await self.store.save(record)
        except Exception as e:
            logger.warning(
                f"Failed to save {record.role} message: {e!r}",
                extra={"extra_fields": {"event": "persist_failed", "thread_id": record.thread_id}},
            )
