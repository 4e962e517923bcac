"""FastAPI application for the chat service."""

import os
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from connectors.openai import OpenAIConnector
from connectors.providers import OpenAIBatchProvider, OpenAIStreamingProvider

from .database import Database
from .errors import ChatError
from .observability import initialize_observability
from .routes import chat_router, health_router

# Initialize logger
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info("api_starting")

    initialize_observability()
    await Database.connect()

    connector = None
    api_key = os.getenv("OPENAI_API_KEY")
    if api_key:
        connector = OpenAIConnector(api_key=api_key)
        app.state.batch_provider = OpenAIBatchProvider(connector)
        app.state.streaming_provider = OpenAIStreamingProvider(connector)
    else:
        logger.warning("openai_api_key_missing")

    logger.info("api_started")

    yield

    logger.info("api_shutting_down")
    if connector is not None:
        await connector.close()
    await Database.disconnect()
    logger.info("api_shutdown_complete")


app = FastAPI(
    title="Chatstream API",
    description="Session-scoped streaming chat with persisted history",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    """Render chat core errors as ``{"error", "details"}`` JSON."""
    if exc.status_code >= 500:
        logger.error("chat_request_failed", path=request.url.path, error=exc.message, details=exc.details)
    else:
        logger.info("chat_request_rejected", path=request.url.path, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "details": exc.details},
    )


# Instrument FastAPI with OpenTelemetry
FastAPIInstrumentor.instrument_app(app)

# Include routers
app.include_router(health_router)
app.include_router(chat_router)
