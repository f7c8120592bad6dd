"""REST API service entry point.

Builds the FastAPI application serving the module graph, with per-route
request metrics and a uniform JSON error body for every failure.
"""

import sys
import time
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, NoReturn

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.routing import Match

from perseus.common.config import get_settings
from perseus.common.database import close_database, init_database
from perseus.common.exceptions import PerseusError
from perseus.common.logging import bind_context, clear_context, get_logger, setup_logging
from perseus.common.metrics import API_ERRORS, API_REQUEST_DURATION, API_REQUESTS, set_app_info

logger = get_logger(__name__)

UNMATCHED_ROUTE = "unmatched"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging and open the module store for the app's lifetime."""
    settings = get_settings()
    setup_logging(settings.logging, debug=settings.debug)
    set_app_info(version=settings.app_version, environment=settings.environment)

    await init_database(settings)
    logger.info(
        "Perseus API ready",
        version=settings.app_version,
        environment=settings.environment,
        database=settings.database.database,
    )
    try:
        yield
    finally:
        await close_database()
        logger.info("Perseus API stopped")


def route_label(request: Request) -> str:
    """Return the route template serving request.

    Requests that match no route share a single label so unknown paths
    cannot grow the metric label set.
    """
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", UNMATCHED_ROUTE)
    return UNMATCHED_ROUTE


async def observe_request(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Tag the request with an id and record its outcome per route."""
    bind_context(request_id=uuid.uuid4().hex[:8])
    route = route_label(request)
    start = time.perf_counter()
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        elapsed = time.perf_counter() - start
        API_REQUESTS.labels(method=request.method, route=route, status=status_code).inc()
        API_REQUEST_DURATION.labels(method=request.method, route=route).observe(elapsed)
        logger.info(
            "Handled request",
            method=request.method,
            route=route,
            query=str(request.url.query) or None,
            status_code=status_code,
            duration_ms=round(elapsed * 1000, 2),
        )
        clear_context()


def error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    """Build the JSON error body shared by all handlers."""
    API_ERRORS.labels(error_code=error_code).inc()
    content: dict[str, Any] = {"error": error_code, "message": message}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


async def handle_perseus_error(request: Request, exc: PerseusError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", error_code=exc.error_code, message=exc.message)
    else:
        logger.warning("Request rejected", error_code=exc.error_code, message=exc.message)
    body = exc.to_dict()
    return error_response(exc.status_code, body["error"], body["message"], body.get("details"))


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_errors(exc)
    logger.warning("Request rejected", error_code="VALIDATION_ERROR", errors=errors)
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        "VALIDATION_ERROR",
        "Request validation failed",
        errors,
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", error_type=type(exc).__name__)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An internal error occurred",
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Strip non-serializable context from validation errors."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


def create_app() -> FastAPI:
    """Create the Perseus API application."""
    from perseus.api.routers import admin, modules

    settings = get_settings()
    show_docs = not settings.is_production

    app = FastAPI(
        title="Perseus API",
        description="Go module dependency graph REST API",
        version=settings.app_version,
        docs_url="/docs" if show_docs else None,
        redoc_url="/redoc" if show_docs else None,
        openapi_url="/openapi.json" if show_docs else None,
        lifespan=lifespan,
    )
    app.middleware("http")(observe_request)
    app.add_exception_handler(PerseusError, handle_perseus_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(admin.router)
    app.include_router(modules.router, prefix="/api/v1")

    @app.get("/")
    async def root() -> dict:
        return {
            "name": "Perseus API",
            "version": settings.app_version,
            "docs": "/docs" if show_docs else None,
        }

    return app


def run() -> NoReturn:
    """Run the API server."""
    import uvicorn

    settings = get_settings()

    try:
        uvicorn.run(
            "perseus.api.main:create_app",
            factory=True,
            host=settings.api.host,
            port=settings.api.port,
            workers=settings.api.workers if not settings.api.reload else 1,
            reload=settings.api.reload,
            log_level="info",
            access_log=False,
        )
        sys.exit(0)
    except KeyboardInterrupt:
        sys.exit(0)
    except Exception as e:
        logger.error("API failed to start", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    run()
