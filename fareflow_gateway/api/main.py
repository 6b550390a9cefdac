"""FastAPI application factory"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from fareflow_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from fareflow_gateway.api.routes import fares, notifications, outbox
from fareflow_gateway.infrastructure.database.session import init_db
from fareflow_gateway.infrastructure.observability.logging import setup_logging
from fareflow_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_tables:
        init_db()
    yield


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="FareFlow Gateway",
        description="Card-tap fare settlement and rider notification service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers (terminal-facing paths are unversioned)
    app.include_router(fares.router, tags=["fares"])
    app.include_router(notifications.router, tags=["notifications"])
    app.include_router(outbox.router, tags=["outbox"])

    return app


app = create_app()
