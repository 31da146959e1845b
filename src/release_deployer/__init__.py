"""Release Deployer - webhook-driven release deployment with atomic activation."""

__version__ = "0.1.0"
__author__ = "Release Deployer Team"

from release_deployer.core.config import DeployerConfig, Settings
from release_deployer.core.models import ProjectDescriptor, ReleaseRequest

__all__ = ["Settings", "DeployerConfig", "ProjectDescriptor", "ReleaseRequest", "__version__"]
