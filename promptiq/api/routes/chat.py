"""
Streaming chat proxy.

Checks the caller owns the thread, forwards the conversation to the upstream
provider and relays its event stream byte-for-byte.
"""
from fastapi import APIRouter, Depends, Request, Response
from starlette.background import BackgroundTask

from promptiq.api.deps import get_thread_service, get_upstream_service, parse_body
from promptiq.core.auth import CurrentUser, get_current_user
from promptiq.core.config import Settings, get_settings
from promptiq.core.logging import get_logger, stream_logger
from promptiq.core.streaming import SSEProxyResponse
from promptiq.schemas.chat import ChatStreamRequest
from promptiq.services.thread_service import ThreadService
from promptiq.services.upstream_service import UpstreamService

router = APIRouter()

logger = get_logger("api.chat")


@router.post("/stream")
async def stream_chat(
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    threads: ThreadService = Depends(get_thread_service),
    upstream: UpstreamService = Depends(get_upstream_service),
) -> Response:
    """
    Streaming chat endpoint using Server-Sent Events (SSE).

    Request body:
    {
        "model": "openai/gpt-oss-20b:free",
        "messages": [{"role": "user", "content": "Hello"}],
        "threadId": "..."
    }

    Response: the upstream SSE stream, ``data: {...}`` frames ending with
    ``data: [DONE]``. A non-2xx upstream answer is passed back with its
    status and body.
    """
    body = await parse_body(
        request,
        ChatStreamRequest,
        "Bad request: missing messages, model, or threadId",
    )

    await threads.get_thread_for_user(body.thread_id, user.id)

    messages = [m.model_dump() for m in body.messages]
    stream_logger.log_stream_start(body.thread_id, body.model, len(messages), side="proxy")

    upstream_response = await upstream.open_stream(body.model, messages)

    if not upstream_response.is_success:
        content = await upstream_response.aread()
        await upstream_response.aclose()
        logger.warning(
            f"Upstream answered {upstream_response.status_code} for {body.model}",
            extra={"extra_fields": {"thread_id": body.thread_id}},
        )
        return Response(
            content=content,
            status_code=upstream_response.status_code,
            media_type=upstream_response.headers.get("content-type", "text/plain"),
        )

    return SSEProxyResponse(
        upstream_response.aiter_bytes(),
        background=BackgroundTask(upstream_response.aclose),
    )


@router.get("/models")
async def list_models(
    user: CurrentUser = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Models offered in the model selector."""
    return {"models": settings.available_models, "default": settings.default_model}
