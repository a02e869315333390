from promptiq.stream.accumulator import DeltaAccumulator, TokenUsage
from promptiq.stream.buffer import RenderBuffer
from promptiq.stream.client import create_stream_client
from promptiq.stream.controller import ChatStreamController
from promptiq.stream.conversation import ChatMessage, Conversation, Role
from promptiq.stream.decoder import ChunkDecoder
from promptiq.stream.parser import DONE_SENTINEL, SSEEvent, SSEParseError, SSEParser
from promptiq.stream.persistence import HttpMessageStore, MessageRecord, MessageStore
from promptiq.stream.session import ErrorKind, StreamOutcome, StreamSession, StreamState
from promptiq.stream.sniffer import extract_http_error_message, sniff_error_chunk

__all__ = [
    "ChatStreamController",
    "ChatMessage",
    "ChunkDecoder",
    "Conversation",
    "DeltaAccumulator",
    "DONE_SENTINEL",
    "ErrorKind",
    "HttpMessageStore",
    "MessageRecord",
    "MessageStore",
    "RenderBuffer",
    "Role",
    "SSEEvent",
    "SSEParseError",
    "SSEParser",
    "StreamOutcome",
    "StreamSession",
    "StreamState",
    "TokenUsage",
    "create_stream_client",
    "extract_http_error_message",
    "sniff_error_chunk",
]
