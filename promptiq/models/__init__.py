from promptiq.models.thread import Message, MessageRole, Thread

__all__ = [
    "Thread",
    "Message",
    "MessageRole",
]
