"""Client-side conversation state shown by the chat surface."""
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class ChatMessage:
    """One chat line. Updates produce a new value."""

    role: Role
    content: str = ""
    model: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_history_entry(self) -> dict[str, str]:
        """Role and content as sent upstream."""
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "ChatMessage":
        """Build from a stored message as returned by ``GET /threads/{id}``."""
        created_at = record.get("createdAt")
        return cls(
            id=record["id"],
            role=Role(record["role"]),
            content=record.get("content") or "",
            model=record.get("model"),
            input_tokens=record.get("inputTokens"),
            output_tokens=record.get("outputTokens"),
            created_at=(
                datetime.fromisoformat(created_at)
                if created_at
                else datetime.now(timezone.utc)
            ),
        )


class Conversation:
    """
    Ordered messages of one thread.

    Insertion order is temporal order. The presentation layer reads it and may
    subscribe to updates; only the stream controller changes it.
    """

    def __init__(
        self,
        messages: Iterable[ChatMessage] = (),
        on_update: Callable[[ChatMessage], None] | None = None,
    ):
        self._messages: list[ChatMessage] = list(messages)
        self._on_update = on_update

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(list(self._messages))

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def snapshot(self) -> tuple[ChatMessage, ...]:
        """Messages as of now; later updates do not show up in it."""
        return tuple(self._messages)

    def get(self, message_id: str) -> ChatMessage:
        for message in self._messages:
            if message.id == message_id:
                return message
        raise KeyError(message_id)

    def append(self, *messages: ChatMessage) -> None:
        for message in messages:
            self._messages.append(message)
            self._notify(message)

    def update(self, message_id: str, **changes: Any) -> ChatMessage:
        """Replace fields of one message."""
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                updated = replace(message, **changes)
                self._messages[index] = updated
                self._notify(updated)
                return updated
        raise KeyError(message_id)

    def append_content(self, message_id: str, text: str) -> ChatMessage:
        current = self.get(message_id)
        return self.update(message_id, content=current.content + text)

    def set_content(self, message_id: str, text: str) -> ChatMessage:
        return self.update(message_id, content=text)

    def last_used_model(self, default: str) -> str:
        """Model of the last message, else ``default``."""
        if self._messages and self._messages[-1].model:
            return self._messages[-1].model
        return default

    def _notify(self, message: ChatMessage) -> None:
        if self._on_update is not None:
            self._on_update(message)


def build_history(
    snapshot: Iterable[ChatMessage],
    new_message: ChatMessage,
) -> list[dict[str, str]]:
    """Upstream message list: the snapshot followed by the new user message."""
    return [m.to_history_entry() for m in snapshot] + [new_message.to_history_entry()]
