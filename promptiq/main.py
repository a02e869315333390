"""
PromptIQ API entry point.

Serves the streaming chat proxy and the thread/message store.
"""
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from promptiq import __version__
from promptiq.api.routes import api_router
from promptiq.api.routes.health import router as health_router
from promptiq.core.config import get_settings
from promptiq.core.database import close_db, init_db
from promptiq.core.exceptions import PromptIQException
from promptiq.core.logging import (
    LogConfig,
    RequestIDContext,
    get_logger,
    request_logger,
    setup_logging,
)
from promptiq.services.upstream_service import UpstreamService

logger = get_logger("main")

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    setup_logging(LogConfig(level=settings.log_level, format=settings.log_format))
    logger.info(f"Starting {settings.app_name} ({settings.environment})")
    logger.info(f"Upstream: {settings.upstream_url}")

    await init_db()
    app.state.upstream = UpstreamService(settings)

    yield

    await app.state.upstream.close()
    await close_db()
    logger.info(f"{settings.app_name} shutdown")


async def handle_promptiq_exception(request: Request, exc: PromptIQException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Streaming chat proxy with thread history",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_exception_handler(PromptIQException, handle_promptiq_exception)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        with RequestIDContext(request.headers.get(REQUEST_ID_HEADER)) as request_id:
            start = time.perf_counter()
            try:
                response = await call_next(request)
            except Exception as e:
                request_logger.log_request_error(
                    request.method, request.url.path, repr(e), request_id
                )
                raise
            response.headers[REQUEST_ID_HEADER] = request_id
            request_logger.log_request_end(
                request.method,
                request.url.path,
                response.status_code,
                round((time.perf_counter() - start) * 1000, 2),
                request_id,
            )
            return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"name": settings.app_name, "version": __version__}

    app.include_router(health_router)
    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


def main():
    """Run the API server."""
    settings = get_settings()
    uvicorn.run(
        "promptiq.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
