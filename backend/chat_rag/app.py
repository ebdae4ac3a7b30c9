"""FastAPI application setup for chat-rag."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chat_rag.api.dependencies import ServiceContainer, build_services
from chat_rag.api.routes_admin import router as admin_router
from chat_rag.api.routes_ingest import router as ingest_router
from chat_rag.api.routes_listener import router as listener_router
from chat_rag.api.routes_query import router as query_router
from chat_rag.core.config import get_settings
from chat_rag.core.errors import (
    ChatRagError,
    DocumentNotFound,
    ExtractionError,
    InvalidAction,
    InvalidQuery,
    UnsupportedFileType,
)
from chat_rag.core.logging import configure_logging, get_logger

logger = get_logger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[ChatRagError], int], ...] = (
    (InvalidQuery, 400),
    (InvalidAction, 400),
    (UnsupportedFileType, 400),
    (DocumentNotFound, 404),
    (ExtractionError, 422),
)


def _status_for(exc: ChatRagError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


async def _chat_rag_error_handler(request: Request, exc: ChatRagError) -> JSONResponse:
    status = _status_for(exc)
    if status >= 500:
        logger.error("Request to %s failed: %s", request.url.path, exc)
    return JSONResponse(status_code=status, content={"error": exc.user_message})


def create_app(services: ServiceContainer | None = None) -> FastAPI:
    """Build the app; ``services`` is created from settings when not supplied."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        container = services or build_services(get_settings())
        app.state.services = container
        try:
            yield
        finally:
            await container.close()

    application = FastAPI(
        title="chat-rag",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["http://127.0.0.1:3000", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_exception_handler(ChatRagError, _chat_rag_error_handler)
    application.include_router(query_router, tags=["query"])
    application.include_router(listener_router, tags=["listener"])
    application.include_router(ingest_router, tags=["ingest"])
    application.include_router(admin_router, tags=["admin"])
    return application


configure_logging()

app = create_app()
