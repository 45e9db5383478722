"""
Main Application - FastAPI application for the mobile chat backend.

Wires routes, error rendering, request logging, metrics and tracing; the
lifespan applies migrations and closes provider clients and engines.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest

from chatgate.api.routes import router
from chatgate.config import settings
from chatgate.db.migration_runner import run_migrations
from chatgate.db.session import close_engines
from chatgate.exceptions import ChatGateError
from chatgate.models.api import ErrorResponse
from chatgate.observability import get_logger, log_context, metrics, setup_logging, setup_tracing
from chatgate.observability.tracing import instrument_fastapi
from chatgate.services.provider_registry import close_providers

# Setup logging before anything else
setup_logging()
logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info(
        "application_starting",
        service=settings.api_title,
        version=settings.api_version,
        tracing_enabled=settings.tracing_enabled,
        metrics_enabled=settings.metrics_enabled,
    )

    if settings.auto_migrate:
        # Alembic is synchronous
        await asyncio.to_thread(run_migrations)

    yield

    # Shutdown
    logger.info("application_shutting_down")
    await close_providers()
    await close_engines()
    logger.info("database_engines_closed")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)


@app.exception_handler(ChatGateError)
async def chatgate_exception_handler(request: Request, exc: ChatGateError) -> JSONResponse:
    """Render domain errors as {"error_type", "description"}."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "request_error",
        path=request.url.path,
        method=request.method,
        error_type=exc.kind,
        status_code=exc.status_code,
        error=exc.message,
    )
    metrics.record_error(exc.kind, request.url.path)

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error_type=exc.kind, description=exc.message).model_dump(),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render malformed requests in the same {"error_type", "description"} shape."""
    problems = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in exc.errors()
    ]
    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=problems,
    )
    metrics.record_error("invalid_request", request.url.path)
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error_type="invalid_request", description="; ".join(problems)
        ).model_dump(),
    )


setup_tracing()
instrument_fastapi(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Time every request and bind its request id to all log entries it produces."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    endpoint = request.url.path
    method = request.method
    started = time.perf_counter()

    with log_context(request_id=request_id):
        logger.info("request_started", method=method, path=endpoint)
        metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).inc()
        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - started
            metrics.record_http_request(endpoint, method, 500, duration)
            metrics.record_error(type(e).__name__, "http_request")
            logger.error(
                "request_failed",
                method=method,
                path=endpoint,
                error=str(e),
                duration_seconds=duration,
                exc_info=True,
            )
            raise
        finally:
            metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).dec()

        duration = time.perf_counter() - started
        metrics.record_http_request(endpoint, method, response.status_code, duration)
        logger.info(
            "request_completed",
            method=method,
            path=endpoint,
            status_code=response.status_code,
            duration_seconds=duration,
        )

    response.headers[REQUEST_ID_HEADER] = request_id
    return response


app.include_router(router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
    }


@app.get("/metrics")
async def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    return PlainTextResponse(generate_latest())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chatgate.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
