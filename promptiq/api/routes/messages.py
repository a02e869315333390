"""Message persistence route."""
from fastapi import APIRouter, Depends, Request

from promptiq.api.deps import get_thread_service, parse_body
from promptiq.core.auth import CurrentUser, get_current_user
from promptiq.core.exceptions import ValidationError
from promptiq.models.thread import MessageRole
from promptiq.schemas.message import MessageCreate
from promptiq.services.thread_service import ThreadService

router = APIRouter()


@router.post("")
async def create_message(
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    threads: ThreadService = Depends(get_thread_service),
) -> dict:
    """Store a finished message in a thread the caller owns."""
    data = await parse_body(request, MessageCreate, "Missing fields")

    try:
        role = MessageRole(data.role)
    except ValueError:
        raise ValidationError("Invalid role", field="role")

    message = await threads.append_message(
        thread_id=data.thread_id,
        user_id=user.id,
        role=role,
        content=data.content,
        model=data.model,
        input_tokens=data.input_tokens,
        output_tokens=data.output_tokens,
    )
    return {"message": message.to_dict()}
