"""
Delta accumulation for streamed chat completions.

Each event's ``data`` is decoded against a partial chat-completion chunk
schema. Every field is optional; a missing field means "nothing to take from
this event", never an error.
"""
import json
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, ValidationError

from promptiq.core.logging import get_logger

logger = get_logger("stream.accumulator")


class ChunkDelta(BaseModel):
    """``choices[i].delta`` when it is an object."""

    model_config = ConfigDict(extra="ignore")

    content: str | None = None


class ChunkChoice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    delta: ChunkDelta | str | None = None


class ChunkUsage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class CompletionChunk(BaseModel):
    """The subset of a streamed completion chunk this client reads."""

    model_config = ConfigDict(extra="ignore")

    model: str | None = None
    choices: list[ChunkChoice] | None = None
    usage: ChunkUsage | None = None

    def delta_text(self) -> str:
        """Text carried by the first choice, or an empty string."""
        if not self.choices:
            return ""
        delta = self.choices[0].delta
        if isinstance(delta, ChunkDelta):
            return delta.content or ""
        if isinstance(delta, str):
            return delta
        return ""


@dataclass
class TokenUsage:
    """Token counters reported by the provider; None until reported."""

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class DeltaAccumulator:
    """
    Collect assistant text, usage and the effective model from stream events.

    The effective model starts as the requested one and is replaced once, by
    the first event that names a different model. Usage counters are
    overwritten whenever an event carries them.
    """

    def __init__(self, requested_model: str):
        self.requested_model = requested_model
        self.effective_model = requested_model
        self.usage = TokenUsage()
        self._model_captured = False
        self._parts: list[str] = []

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def ingest(self, data: str) -> str:
        """
        Apply one event's data.

        Returns:
            The text delta carried by the event, possibly empty.
        """
        try:
            raw = json.loads(data)
        except ValueError:
            # keep-alives and other non-JSON payloads
            return ""

        try:
            chunk = CompletionChunk.model_validate(raw)
        except ValidationError as e:
            logger.debug(f"Ignoring event with unexpected shape: {e.error_count()} errors")
            return ""

        if chunk.model and not self._model_captured and chunk.model != self.requested_model:
            self.effective_model = chunk.model
            self._model_captured = True

        if chunk.usage is not None:
            if chunk.usage.prompt_tokens is not None:
                self.usage.prompt_tokens = chunk.usage.prompt_tokens
            if chunk.usage.completion_tokens is not None:
                self.usage.completion_tokens = chunk.usage.completion_tokens
            if chunk.usage.total_tokens is not None:
                self.usage.total_tokens = chunk.usage.total_tokens

        delta = chunk.delta_text()
        if delta:
            self._parts.append(delta)
        return delta
