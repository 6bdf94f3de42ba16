"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from coop_settlement.api.errors import register_exception_handlers
from coop_settlement.api.middleware import RequestIDMiddleware, MetricsMiddleware
from coop_settlement.api.v1 import settlement, payouts, ledger, diagnostics
from coop_settlement.infrastructure.observability.logging import setup_logging
from coop_settlement.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Cooperative Settlement Service",
        description="Delivery settlement and loan-offset ledger",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(settlement.router, prefix="/v1", tags=["settlement"])
    app.include_router(payouts.router, prefix="/v1", tags=["payouts"])
    app.include_router(ledger.router, prefix="/v1", tags=["ledger"])
    app.include_router(diagnostics.router, prefix="/v1", tags=["diagnostics"])

    return app


app = create_app()
