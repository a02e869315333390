from promptiq.schemas.chat import ChatStreamRequest, HistoryMessage
from promptiq.schemas.message import MessageCreate

__all__ = [
    "ChatStreamRequest",
    "HistoryMessage",
    "MessageCreate",
]
