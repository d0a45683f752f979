"""Pepper chat API service.

FastAPI application serving the chat endpoints of the Pepper legal
assistant: thread management, history and the streamed chat turn.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from api.models import HealthResponse
from api.routers import chat as chat_router
from libs.caching.redis_client import close_redis_client
from libs.common.settings import get_settings
from libs.firebase.client import initialize_firebase_app

SERVICE_NAME = "pepper-chat"
SERVICE_VERSION = "0.1.0"
MAX_REQUEST_BYTES = 1024 * 1024

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)
logging.basicConfig(format="%(message)s", level=get_settings().log_level)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if not settings.is_test:
        initialize_firebase_app()
    logger.info("Service started", env=settings.app_env, cache_backend=settings.cache_backend)
    yield
    await close_redis_client()
    logger.info("Service stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Pepper Chat API",
        description="Conversation threads, memory and streamed answers for the Pepper legal assistant",
        version=SERVICE_VERSION,
        default_response_class=ORJSONResponse,
        debug=settings.debug,
        lifespan=lifespan,
    )

    cors_origins = ["*"] if settings.is_development else settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=not settings.is_development,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def limit_request_size(request: Request, call_next):
        if request.method in ("POST", "PUT", "PATCH"):
            content_length = request.headers.get("content-length")
            if content_length and content_length.isdigit() and int(content_length) > MAX_REQUEST_BYTES:
                return ORJSONResponse(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    content={
                        "error": "REQUEST_TOO_LARGE",
                        "message": f"Request body too large. Maximum size: {MAX_REQUEST_BYTES} bytes",
                    },
                )
        return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log every request with timing and a request id."""
        start_time = time.time()
        request_id = request.headers.get("x-request-id") or f"req_{uuid.uuid4().hex[:16]}"
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info("Request started", request_id=request_id, method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                request_id=request_id,
                error=str(e),
                process_time_ms=round((time.time() - start_time) * 1000, 2),
                exc_info=True,
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        logger.info(
            "Request completed",
            request_id=request_id,
            status_code=response.status_code,
            process_time_ms=round((time.time() - start_time) * 1000, 2),
        )
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(chat_router.router)

    @app.get("/healthz", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Liveness probe."""
        return HealthResponse(status="healthy", service=SERVICE_NAME, version=SERVICE_VERSION)

    @app.get("/readyz", response_model=HealthResponse, tags=["Health"])
    async def readiness_check() -> HealthResponse:
        """Readiness probe reporting the configured backends.

        The upstream API key is the only hard requirement: without it every
        completion turn fails.
        """
        settings = get_settings()
        ready = bool(settings.completion_api_key)
        return HealthResponse(
            status="ready" if ready else "not_ready",
            service=SERVICE_NAME,
            version=SERVICE_VERSION,
            details={
                "cache": settings.cache_backend,
                "completion": "configured" if ready else "missing_api_key",
                "firestore_project": settings.firestore_project,
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
