"""Shared route dependencies."""
from typing import TypeVar

import pydantic
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from promptiq.core.config import Settings, get_settings
from promptiq.core.database import get_db
from promptiq.core.exceptions import ValidationError
from promptiq.services.thread_service import ThreadService
from promptiq.services.upstream_service import UpstreamService

SchemaT = TypeVar("SchemaT", bound=pydantic.BaseModel)


def get_thread_service(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> ThreadService:
    return ThreadService(db, default_title=settings.default_thread_title)


def get_upstream_service(request: Request) -> UpstreamService:
    """The application's upstream client, created on first use."""
    upstream = getattr(request.app.state, "upstream", None)
    if upstream is None:
        upstream = UpstreamService(get_settings())
        request.app.state.upstream = upstream
    return upstream


async def parse_body(request: Request, schema: type[SchemaT], message: str) -> SchemaT:
    """
    Validate a JSON body, answering 400 instead of FastAPI's 422.

    Raises:
        ValidationError: If the body is not JSON or does not fit ``schema``.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError(message)

    try:
        return schema.model_validate(payload)
    except pydantic.ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ValidationError(message, details={"fields": fields})
