"""FastAPI application for the Lead CRM API."""

from __future__ import annotations

from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lead_crm import __version__
from lead_crm.api import appointments, health, reconciliation, timeslots
from lead_crm.config import get_settings, validate_production_settings
from lead_crm.core.exceptions import LeadCrmError
from lead_crm.core.logging import get_logger, setup_logging
from lead_crm.db import close_db, init_db
from lead_crm.dependencies import close_notifier

log = get_logger(__name__)


def _error_name(status_code: int) -> str:
    """`unauthorized` for 401, `not_found` for 404 and so on."""
    try:
        phrase = HTTPStatus(status_code).phrase
    except ValueError:
        return "error"
    return phrase.lower().replace(" ", "_").replace("-", "_")


def lead_crm_exception_handler(request: Request, exc: LeadCrmError) -> JSONResponse:
    log.warning(
        "Request failed",
        error=exc.message,
        error_code=exc.error_code,
        cause=repr(exc.cause) if exc.cause else None,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": _error_name(exc.status_code), "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 with one `{field, message, type}` entry per failed field."""
    details = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body") or "request",
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "error": "validation_error",
            "message": "Request validation failed",
            "details": details,
        },
    )


def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 for anything unexpected; the message is only shown in debug."""
    log.exception("Unhandled exception", path=request.url.path, error_type=type(exc).__name__)
    message = str(exc) if get_settings().debug else "An internal error occurred"
    return JSONResponse(status_code=500, content={"error": "internal_error", "message": message})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    setup_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        environment=settings.environment,
    )
    log.info(
        "Lead CRM starting",
        version=__version__,
        environment=settings.environment,
        utc_offset_hours=settings.clock.utc_offset_hours,
    )
    for problem in validate_production_settings(settings):
        log.warning("Configuration problem", problem=problem)

    await init_db()
    try:
        yield
    finally:
        await close_notifier()
        await close_db()
        log.info("Lead CRM stopped")


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Lead CRM",
        description="Appointment reconciliation and timeslot allocation",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_exception_handler(LeadCrmError, lead_crm_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(health.router, tags=["Health"])
    for module, tag in (
        (reconciliation, "Reconciliation"),
        (appointments, "Appointments"),
        (timeslots, "Timeslots"),
    ):
        app.include_router(module.router, prefix="/api/v1", tags=[tag])

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve `app` with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "lead_crm.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
