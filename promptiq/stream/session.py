"""State owned by one in-flight send."""
import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum

from promptiq.core.logging import get_logger
from promptiq.stream.accumulator import DeltaAccumulator, TokenUsage
from promptiq.stream.buffer import RenderBuffer
from promptiq.stream.decoder import ChunkDecoder
from promptiq.stream.parser import SSEEvent, SSEParseError, SSEParser

logger = get_logger("stream.session")


class StreamState(str, Enum):
    """Controller states."""

    IDLE = "idle"
    SENDING = "sending"
    SUCCESS = "success"
    ABORTED = "aborted"
    ERROR = "error"


class ErrorKind(str, Enum):
    """Why a send ended in the error state."""

    TRANSPORT = "transport"
    HTTP = "http"
    NO_STREAM = "no_stream"
    EMBEDDED = "embedded"


@dataclass(frozen=True)
class StreamOutcome:
    """Terminal result of one send."""

    state: StreamState
    message_id: str
    content: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    status_code: int | None = None


class StreamSession:
    """
    Ephemeral state for one send: decoder, parser, accumulator and render
    buffer, plus the task doing the reading.

    Created per send and dropped when the send reaches a terminal state.
    Implements the parser's event handler interface.
    """

    def __init__(
        self,
        thread_id: str,
        message_id: str,
        requested_model: str,
        buffer: RenderBuffer,
    ):
        self.thread_id = thread_id
        self.message_id = message_id
        self.decoder = ChunkDecoder()
        self.parser = SSEParser(self)
        self.accumulator = DeltaAccumulator(requested_model)
        self.buffer = buffer
        self.task: asyncio.Task | None = None
        self.abort_requested = False
        self.outcome: StreamOutcome | None = None
        self.bytes_received = 0
        self.parse_errors = 0
        self.started_at = time.perf_counter()

    @property
    def requested_model(self) -> str:
        return self.accumulator.requested_model

    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.started_at) * 1000, 2)

    def on_event(self, event: SSEEvent) -> None:
        delta = self.accumulator.ingest(event.data)
        if delta:
            self.buffer.append(delta)

    def on_error(self, error: SSEParseError) -> None:
        self.parse_errors += 1
        logger.warning(
            f"Skipping malformed stream record: {error}",
            extra={
                "extra_fields": {
                    "event": "stream_parse_error",
                    "kind": error.kind,
                    "thread_id": self.thread_id,
                }
            },
        )
