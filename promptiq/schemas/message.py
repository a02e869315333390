from pydantic import BaseModel, ConfigDict, Field


class MessageCreate(BaseModel):
    """Request body for storing a finished message."""

    model_config = ConfigDict(populate_by_name=True)

    content: str = Field(min_length=1)
    thread_id: str = Field(alias="threadId", min_length=1)
    role: str = Field(min_length=1)
    model: str = Field(min_length=1)
    input_tokens: int | None = Field(default=None, alias="inputTokens", ge=0)
    output_tokens: int | None = Field(default=None, alias="outputTokens", ge=0)
