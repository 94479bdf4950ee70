"""
FastAPI application entry point for the offer generator backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.config import get_settings
from backend.errors import BackendError, ValidationFailedError
from backend.events import PERMISSION_ERROR, emitter
from backend.routes import router

logger = logging.getLogger(__name__)


def _field_path(loc) -> str:
    # Drop the leading "body"/"query" marker FastAPI adds.
    parts = [str(p) for p in loc]
    if parts and parts[0] in ("body", "query", "path"):
        parts = parts[1:]
    return ".".join(parts) or "__root__"


def _log_permission_error(context: dict) -> None:
    logger.warning(
        "Permission error during %s on %s: %s",
        context.get("operation"),
        context.get("collection"),
        context.get("error"),
    )


async def backend_error_handler(request: Request, exc: BackendError):
    content = {"detail": exc.detail}
    if isinstance(exc, ValidationFailedError):
        content["fields"] = exc.fields
    return JSONResponse(status_code=exc.status_code, content=content)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = {}
    for error in exc.errors():
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        fields.setdefault(_field_path(error.get("loc", ())), message)
    return JSONResponse(
        status_code=422, content={"detail": "Validation failed", "fields": fields}
    )


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="Generator File Greenskill API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(BackendError, backend_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    emitter.on(PERMISSION_ERROR, _log_permission_error)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
