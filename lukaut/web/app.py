"""FastAPI application for Lukaut - construction safety inspections."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.middleware.base import BaseHTTPMiddleware

from lukaut.core.logging import configure_logging
from lukaut.db.connection import close_db
from lukaut.jobs.queue import close_pool
from lukaut.web.csrf import CSRFMiddleware
from lukaut.web.errors import register_exception_handlers
from lukaut.web.rate_limit import RateLimitMiddleware
from lukaut.web.routes import (
    admin,
    auth,
    clients,
    dashboard,
    files,
    health,
    images,
    inspections,
    regulations,
    reports,
    settings,
    sites,
    violations,
    webhooks,
)
from lukaut.web.security import SecurityHeadersMiddleware

logger = structlog.get_logger()


# Request Logging Middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise

        logger.info("request_completed", status_code=response.status_code)
        response.headers["X-Request-ID"] = request_id
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_pool()
    await close_db()


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Lukaut",
        description="Construction safety inspections, violation review and reports",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Outermost last: logging wraps everything, CSRF runs closest to the routes
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    # Prometheus Metrics
    Instrumentator().instrument(app).expose(app)

    static_dir = Path(__file__).parent / "static"
    if static_dir.exists():
        app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")

    register_exception_handlers(app)

    for module in (
        health,
        auth,
        dashboard,
        clients,
        sites,
        inspections,
        images,
        violations,
        regulations,
        reports,
        settings,
        admin,
        webhooks,
        files,
    ):
        app.include_router(module.router)

    return app


app = create_app()
