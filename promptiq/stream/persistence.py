"""Message persistence hand-off for the streaming client."""
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

MESSAGES_PATH = "/api/messages"


@dataclass(frozen=True)
class MessageRecord:
    """A finished chat message to store."""

    thread_id: str
    role: str
    content: str
    model: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "content": self.content,
            "threadId": self.thread_id,
            "role": self.role,
            "model": self.model,
        }
        if self.input_tokens is not None:
            payload["inputTokens"] = self.input_tokens
        if self.output_tokens is not None:
            payload["outputTokens"] = self.output_tokens
        return payload


class MessageStore(Protocol):
    """Anything that can save a finished message."""

    async def save(self, record: MessageRecord) -> None: ...


class HttpMessageStore:
    """Saves messages through ``POST /api/messages``."""

    def __init__(self, client: httpx.AsyncClient, path: str = MESSAGES_PATH):
        self.client = client
        self.path = path

    async def save(self, record: MessageRecord) -> None:
        """
        Raises:
            httpx.HTTPError: On transport failures or a non-2xx answer.
        """
        response = await self.client.post(self.path, json=record.to_payload())
        response.raise_for_status()
