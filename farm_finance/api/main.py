"""FastAPI application factory"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from farm_finance.api.middleware import MetricsMiddleware, RequestIDMiddleware
from farm_finance.api.v1 import credit, deals, periods
from farm_finance.config import settings
from farm_finance.domain.exceptions import NotAuthorityError
from farm_finance.infrastructure.clients.memory import (
    InMemoryAssetRegistry,
    InMemoryLandRegistry,
    InMemoryLedger,
    RecordingNotifier,
)
from farm_finance.infrastructure.database.models import Base
from farm_finance.infrastructure.database.session import engine
from farm_finance.infrastructure.observability.logging import setup_logging
from farm_finance.services.registry import DealRegistry

# Setup structured logging
setup_logging(settings.log_level)


def build_registry() -> DealRegistry:
    """Registry over in-memory collaborators, for running the service standalone"""
    return DealRegistry(
        ledger=InMemoryLedger(),
        assets=InMemoryAssetRegistry(),
        lands=InMemoryLandRegistry(),
        notifier=RecordingNotifier(),
    )


def create_app(registry: Optional[DealRegistry] = None) -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Farm Finance Engine",
        description="Deal lifecycle, credit scoring and monthly payment processing",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.registry = registry or build_registry()

    Base.metadata.create_all(bind=engine)

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.exception_handler(NotAuthorityError)
    async def not_authority_handler(request: Request, exc: NotAuthorityError):
        logging.warning(
            f"Rejected mutation outside the authority role: {exc}",
            extra={"request_id": getattr(request.state, "request_id", "unknown"), "path": request.url.path},
        )
        return JSONResponse(status_code=403, content={"detail": str(exc)})

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name, "role": settings.role}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(deals.router, prefix="/v1", tags=["deals"])
    app.include_router(credit.router, prefix="/v1", tags=["credit"])
    app.include_router(periods.router, prefix="/v1", tags=["periods"])

    return app


app = create_app()
