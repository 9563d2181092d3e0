"""Advisor API - Main FastAPI Application."""

import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from advisor.api.routes import chat, connections, data_import, instructions, webhooks
from advisor.core.config import settings
from advisor.core.exceptions import AdvisorException


def _configure_logging() -> None:
    """Set up logging based on LOG_FORMAT env var.

    json: Structured JSON via python-json-logger (for production).
    text: Human-readable format (for local development).
    """
    log_format = os.environ.get("LOG_FORMAT", settings.LOG_FORMAT).lower()
    log_level = os.environ.get("LOG_LEVEL", settings.LOG_LEVEL).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Remove existing handlers to avoid duplicate output
    root_logger.handlers.clear()

    handler = logging.StreamHandler()

    if log_format == "json":
        from pythonjsonlogger.json import JsonFormatter

        formatter = JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "timestamp",
                "levelname": "level",
                "name": "service",
            },
            static_fields={"app": "advisor-api"},
        )
        handler.setFormatter(formatter)
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root_logger.addHandler(handler)


_configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> Any:
    """Application lifespan handler for startup and shutdown events."""
    logger.info("Starting Advisor API...")
    settings.validate_startup()

    if not settings.llm_configured:
        logger.warning("OPENAI_API_KEY not configured - running with templated replies")
    if not settings.HUBSPOT_WEBHOOK_SECRET.get_secret_value():
        logger.warning("HUBSPOT_WEBHOOK_SECRET not configured - webhook signatures not verified")
    yield
    logger.info("Shutting down Advisor API...")


app = FastAPI(
    title="Advisor API",
    description="AI assistant for financial advisors over Gmail, Google Calendar and HubSpot",
    version="0.1.0",
    lifespan=lifespan,
)

CORS_ORIGINS = settings.cors_origins_list
logger.info("CORS allowed origins: %s", CORS_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat.router, prefix="/api/v1")
app.include_router(instructions.router, prefix="/api/v1")
app.include_router(data_import.router, prefix="/api/v1")
app.include_router(webhooks.router, prefix="/api/v1")
app.include_router(connections.router, prefix="/api/v1")


@app.get("/health", tags=["system"])
async def root_health_check() -> dict[str, str]:
    """Lightweight liveness check."""
    return {"status": "healthy", "environment": settings.APP_ENV}


@app.exception_handler(AdvisorException)
async def advisor_exception_handler(request: Request, exc: AdvisorException) -> JSONResponse:
    """Handle advisor-specific exceptions.

    Returns:
        JSON error response with consistent format.
    """
    request_id = str(uuid.uuid4())
    logger.warning(
        "Advisor exception occurred",
        extra={
            "code": exc.code,
            "status_code": exc.status_code,
            "request_id": request_id,
            "path": request.url.path,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "code": exc.code,
            "request_id": request_id,
        },
    )


def _validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request body and query validation errors as 400s."""
    request_id = str(uuid.uuid4())
    logger.warning(
        "Request validation error",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=400,
        content={
            "detail": "Request validation error",
            "code": "REQUEST_VALIDATION_ERROR",
            "request_id": request_id,
            "errors": _validation_errors(exc),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions globally."""
    request_id = str(uuid.uuid4())
    logger.exception(
        "Unhandled exception occurred",
        exc_info=exc,
        extra={
            "request_id": request_id,
            "path": request.url.path,
        },
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An internal server error occurred",
            "code": "INTERNAL_ERROR",
            "request_id": request_id,
        },
    )
