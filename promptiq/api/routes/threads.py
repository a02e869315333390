"""Thread routes for chat history."""
from fastapi import APIRouter, Depends, status

from promptiq.api.deps import get_thread_service
from promptiq.core.auth import CurrentUser, get_current_user
from promptiq.core.config import Settings, get_settings
from promptiq.services.thread_service import ThreadService

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_thread(
    user: CurrentUser = Depends(get_current_user),
    threads: ThreadService = Depends(get_thread_service),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Start a new chat, reusing the latest thread if it is still empty."""
    thread, reused = await threads.create_or_reuse_thread(
        user.id,
        reuse_empty=settings.reuse_empty_thread,
    )
    return {**thread.to_dict(), "reused": reused}


@router.get("")
async def list_threads(
    limit: int = 50,
    offset: int = 0,
    user: CurrentUser = Depends(get_current_user),
    threads: ThreadService = Depends(get_thread_service),
) -> list[dict]:
    """List the caller's threads, newest first."""
    items = await threads.list_threads(user.id, limit=limit, offset=offset)
    return [t.to_dict() for t in items]


@router.get("/{thread_id}")
async def get_thread(
    thread_id: str,
    user: CurrentUser = Depends(get_current_user),
    threads: ThreadService = Depends(get_thread_service),
) -> dict:
    """Get a thread with its messages in temporal order."""
    thread = await threads.get_thread_for_user(thread_id, user.id)
    messages = await threads.get_messages(thread.id)
    return {**thread.to_dict(), "messages": [m.to_dict() for m in messages]}
