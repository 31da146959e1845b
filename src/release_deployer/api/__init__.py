"""API module for Release Deployer."""

from .health import router as health_router
from .webhook import router as webhook_router
from .deploy import router as deploy_router

__all__ = [
    "health_router",
    "webhook_router",
    "deploy_router",
]
