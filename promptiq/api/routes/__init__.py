from fastapi import APIRouter

from promptiq.api.routes.chat import router as chat_router
from promptiq.api.routes.health import router as health_router
from promptiq.api.routes.messages import router as messages_router
from promptiq.api.routes.threads import router as threads_router

api_router = APIRouter()

api_router.include_router(chat_router, prefix="/chat", tags=["chat"])
api_router.include_router(messages_router, prefix="/messages", tags=["messages"])
api_router.include_router(threads_router, prefix="/threads", tags=["threads"])
