from pydantic import BaseModel, ConfigDict, Field


class HistoryMessage(BaseModel):
    """One entry of the conversation history sent upstream."""

    model_config = ConfigDict(extra="ignore")

    role: str
    content: str


class ChatStreamRequest(BaseModel):
    """Request body for the streaming proxy."""

    model_config = ConfigDict(populate_by_name=True)

    model: str = Field(min_length=1)
    messages: list[HistoryMessage]
    thread_id: str = Field(alias="threadId", min_length=1)
