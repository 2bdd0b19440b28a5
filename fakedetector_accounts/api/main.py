"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from fakedetector_accounts.api.middleware import RequestIDMiddleware, MetricsMiddleware
from fakedetector_accounts.api.v1 import auth, ledger, webhooks
from fakedetector_accounts.infrastructure.observability.logging import setup_logging
from fakedetector_accounts.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Fake Detector Accounts",
        description="Point ledger, payment crediting and login rate limiting",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
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

    # Register API routers
    app.include_router(webhooks.router, prefix="/v1", tags=["webhooks"])
    app.include_router(ledger.router, prefix="/v1", tags=["ledger"])
    app.include_router(auth.router, prefix="/v1", tags=["auth"])

    return app


app = create_app()
