"""Main entry point for Release Deployer."""

import signal
import sys
from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from release_deployer import __version__
from release_deployer.api.deploy import router as deploy_router
from release_deployer.api.health import router as health_router
from release_deployer.api.middleware import (
    setup_error_handling,
    setup_logging_middleware,
    setup_metrics_middleware,
)
from release_deployer.api.webhook import router as webhook_router
from release_deployer.core.config import DeployerConfig, Settings, load_config
from release_deployer.deploy.manager import DeploymentOrchestrator
from release_deployer.utils.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    orchestrator: DeploymentOrchestrator = app.state.orchestrator
    logger.info(
        "Starting Release Deployer",
        version=__version__,
        base_dir=str(orchestrator.base_dir),
        projects=sorted(orchestrator.config.projects),
    )

    yield

    logger.info("Shutting down Release Deployer")
    orchestrator.close()


def create_app(
    settings: Optional[Settings] = None,
    config: Optional[DeployerConfig] = None,
    orchestrator: Optional[DeploymentOrchestrator] = None,
) -> FastAPI:
    """Create FastAPI application."""
    if settings is None:
        settings = Settings()

    setup_logging(settings.log_level, settings.log_format, settings.log_file)

    if orchestrator is None:
        if config is None:
            config = load_config(settings)
        orchestrator = DeploymentOrchestrator(config, settings)

    app = FastAPI(
        title="Release Deployer",
        version=__version__,
        description="Webhook-driven release deployment with atomic activation and rollback",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.orchestrator = orchestrator

    setup_error_handling(app)
    setup_logging_middleware(app)
    setup_metrics_middleware(app)

    app.include_router(health_router, tags=["health"])
    app.include_router(webhook_router, tags=["webhook"])
    app.include_router(deploy_router, tags=["deployments"])

    if settings.metrics_enabled:
        app.mount("/metrics", make_asgi_app())

    return app


def run():
    """Run the application."""
    settings = Settings()

    def handle_sigterm(signum, frame):
        logger.info("Received SIGTERM, initiating graceful shutdown")
        sys.exit(0)

    signal.signal(signal.SIGTERM, handle_sigterm)

    config = uvicorn.Config(
        "release_deployer.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        reload=settings.reload,
        log_config=None,  # We handle logging ourselves
        access_log=False,  # Handled by middleware
    )

    server = uvicorn.Server(config)
    server.run()


if __name__ == "__main__":
    run()
