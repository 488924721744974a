"""
Main Application - FastAPI application setup.
"""

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

from pixtokens.api.dependencies import close_clients
from pixtokens.api.routes import router
from pixtokens.config import settings
from pixtokens.db.migration_runner import run_migrations
from pixtokens.db.session import close_engines
from pixtokens.exceptions import PurchaseError
from pixtokens.models.api import ErrorResponse
from pixtokens.observability import get_logger, log_context, metrics, setup_logging, setup_tracing
from pixtokens.observability.tracing import instrument_fastapi

# Setup logging before anything else
setup_logging()
logger = get_logger(__name__)

CORS_ALLOWED_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info(
        "application_starting",
        service=settings.api_title,
        version=settings.api_version,
        gateway_configured=settings.gateway_configured,
        gateway_test_mode=settings.gateway_test_mode,
        identity_configured=settings.identity_configured,
        tracing_enabled=settings.tracing_enabled,
    )

    if settings.identity_configured and not settings.auth_jwt_secret:
        logger.warning(
            "identity_claims_fallback_disabled",
            detail="AUTH_JWT_SECRET unset; status checks fail while the auth provider is down",
        )

    if settings.run_migrations:
        await asyncio.to_thread(run_migrations)

    yield

    logger.info("application_shutting_down")
    await close_clients()
    await close_engines()
    logger.info("database_engines_closed")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)


@app.exception_handler(PurchaseError)
async def purchase_error_handler(request: Request, exc: PurchaseError) -> JSONResponse:
    """Render domain errors as {"status": "error", "error", "reason"}."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "purchase_request_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        reason=exc.reason,
        status_code=exc.status_code,
        error=exc.message,
    )
    metrics.record_error(exc.reason, request.url.path)
    body = ErrorResponse(error=exc.message, reason=exc.reason)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Log detailed validation errors and answer with the error envelope."""
    sanitized_errors = []
    for error in exc.errors():
        sanitized = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
        }
        # ctx may contain non-serializable objects
        if "ctx" in error:
            sanitized["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        sanitized_errors.append(sanitized)

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=sanitized_errors,
    )
    metrics.record_error("invalid_request", request.url.path)
    body = ErrorResponse(error="Invalid request.", reason="invalid_request")
    return JSONResponse(status_code=400, content=body.model_dump())


# Setup tracing
setup_tracing()
instrument_fastapi(app)


class ProxyHeadersMiddleware(BaseHTTPMiddleware):
    """Trust X-Forwarded-Proto from the reverse proxy."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        forwarded_proto = request.headers.get("X-Forwarded-Proto")
        if forwarded_proto:
            request.scope["scheme"] = forwarded_proto

        return await call_next(request)


app.add_middleware(ProxyHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=CORS_ALLOWED_HEADERS,
)


@app.middleware("http")
async def logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Log all HTTP requests with timing under a per-request trace id."""
    trace_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
    endpoint = request.url.path
    method = request.method
    start_time = time.time()

    with log_context(trace_id=trace_id):
        logger.info("request_started", method=method, path=endpoint)
        metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).inc()

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
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

        duration = time.time() - start_time
        metrics.record_http_request(endpoint, method, response.status_code, duration)
        logger.info(
            "request_completed",
            method=method,
            path=endpoint,
            status_code=response.status_code,
            duration_seconds=duration,
        )

    response.headers["X-Trace-Id"] = trace_id
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
    """Prometheus metrics in text exposition format."""
    if not settings.metrics_enabled:
        return PlainTextResponse("metrics disabled\n", status_code=404)
    return PlainTextResponse(generate_latest())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pixtokens.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
