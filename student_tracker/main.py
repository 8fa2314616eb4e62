"""Student Tracker API application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from student_tracker import __version__
from student_tracker.config import Settings, get_settings
from student_tracker.core.context import get_request_id
from student_tracker.core.database import (
    init_async_cassandra,
    shutdown_async_cassandra,
)
from student_tracker.core.logging import configure_structlog, get_logger
from student_tracker.core.middleware import RequestContextMiddleware
from student_tracker.health import router as health_router
from student_tracker.students.router import maintenance_router
from student_tracker.students.router import router as students_router
from student_tracker.students.service import StudentService


settings = get_settings()
configure_structlog(settings)

logger = get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the Cassandra session and build the student service.

    When the store is unreachable the API still starts; student routes then
    answer 503 and ``/health/ready`` reports ``degraded``.
    """
    settings = get_settings()
    logger.info(
        "student_tracker_starting",
        version=settings.app_version,
        environment=settings.environment,
        keyspace=settings.cassandra_keyspace,
    )

    try:
        session = await init_async_cassandra()
    except Exception as e:
        logger.warning("student_store_unavailable", error=str(e))
    else:
        app.state.student_service = StudentService(
            session=session,
            keyspace=settings.cassandra_keyspace,
            page_size=settings.backup_page_size,
        )
        logger.info("student_store_ready")

    yield

    app.state.student_service = None
    await shutdown_async_cassandra()
    logger.info("student_tracker_stopped")


# ==============================================================================
# Error responses
# ==============================================================================


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or get_request_id() or None


def error_response(
    request: Request,
    status_code: int,
    message: str,
    **extra: Any,
) -> ORJSONResponse:
    """JSON error body shared by every handler."""
    return ORJSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "message": message,
            "status_code": status_code,
            "request_id": _request_id(request),
            **extra,
        },
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> ORJSONResponse:
    """Domain errors and 404s; 5xx details stay in the logs."""
    logger.warning(
        "http_error",
        status_code=exc.status_code,
        detail=str(exc.detail),
        method=request.method,
        path=request.url.path,
    )
    message = str(exc.detail)
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        message = INTERNAL_ERROR_MESSAGE
    return error_response(request, exc.status_code, message)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    """Malformed bodies (missing name, restore payload not an array) are 400s."""
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    logger.warning(
        "request_rejected",
        method=request.method,
        path=request.url.path,
        details=details,
    )
    return error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "Validation error",
        details=details,
    )


async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> ORJSONResponse:
    """Store failures and bugs: log the traceback, answer a generic 500."""
    logger.exception(
        "unhandled_exception",
        error_type=type(exc).__name__,
        error_message=str(exc),
        method=request.method,
        path=request.url.path,
    )
    return error_response(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE
    )


# ==============================================================================
# Application factory
# ==============================================================================


def _add_middleware(app: FastAPI, settings: Settings) -> None:
    # Added first so it wraps everything else
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    settings = get_settings()
    docs_enabled = settings.is_development

    app = FastAPI(
        title="Student Tracker API",
        version=settings.app_version,
        description="Slug-keyed student progress records",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.state.student_service = None

    _add_middleware(app, settings)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_router)
    app.include_router(students_router)
    app.include_router(maintenance_router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        return {"message": "Student Tracker API", "version": __version__}

    return app


app = create_app()
