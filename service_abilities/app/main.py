"""
Application factory for services that authorize through the Ability Layer.
"""

import time
from typing import Optional

from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from shared.config import AbilityConfig, get_config
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from .middleware import AbilityFactory, AbilityGuard, install_exception_handlers


def create_app(ability_factory: AbilityFactory, service_name: str = "abilities",
               config: Optional[AbilityConfig] = None,
               metrics: Optional[MetricsCollector] = None) -> FastAPI:
    """Create a FastAPI app wired with logging, metrics, error handlers and a guard.

    The guard is available as ``app.state.guard`` for route dependencies::

        app = create_app(lambda request: UserAbility(request.state.user))

        @app.get("/projects/{project_id}")
        async def show(project=Depends(app.state.guard.require("show", load_project))):
            ...
    """
    config = config or get_config()
    metrics = metrics or get_metrics_collector(service_name)
    configure_logging(service_name, config.log_level)
    logger = get_logger(f"{service_name}.http")

    app = FastAPI(
        title=f"{service_name.title()} Service",
        version="1.0.0",
        docs_url="/docs" if config.env == "local" else None,
        redoc_url="/redoc" if config.env == "local" else None,
    )
    app.state.config = config
    app.state.metrics = metrics
    app.state.guard = AbilityGuard(ability_factory)
    install_exception_handlers(app)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time
        logger.info(
            "HTTP request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2)
        )
        return response

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"service": service_name, "status": "ok", "version": "1.0.0"}

    @app.get("/metrics")
    async def metrics_endpoint():
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(metrics.registry), media_type=CONTENT_TYPE_LATEST)

    return app
