"""Custom exceptions for Release Deployer."""

from typing import Optional


class DeployerError(Exception):
    """Base exception for all deployer errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ConfigurationError(DeployerError):
    """Configuration error."""
    pass


# Boundary errors: raised while validating a webhook, never reach the pipeline.


class WebhookError(DeployerError):
    """Webhook request rejected before deployment."""

    status_code = 400


class SignatureError(WebhookError):
    """Webhook signature missing or invalid."""

    status_code = 401


class UnsupportedEventError(WebhookError):
    """Event type is not a release event."""
    pass


class InvalidPayloadError(WebhookError):
    """Webhook body is not a usable release payload."""
    pass


class NoMatchingProjectError(WebhookError):
    """No configured project for the repository."""

    status_code = 404


class BranchMismatchError(WebhookError):
    """Release target branch differs from the configured branch filter."""
    pass


class DeploymentInProgressError(WebhookError):
    """Another deployment of the same project holds the project lock."""

    status_code = 409


# Pipeline errors: raised by deployment components.


class DeploymentError(DeployerError):
    """Deployment pipeline errors."""
    pass


class AssetResolutionError(DeploymentError):
    """Release or asset could not be resolved through the release API."""
    pass


class DownloadError(DeploymentError):
    """Asset download failed."""
    pass


class ExtractionError(DeploymentError):
    """Archive could not be sanitized or unpacked."""
    pass


class StagingError(DeploymentError):
    """Release directory could not be allocated."""
    pass


class SymlinkSwapError(DeploymentError):
    """Current pointer could not be replaced."""
    pass


class ServingSyncError(DeploymentError):
    """Serving directory entry could not be mirrored."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, code="serving_sync")
        self.path = path


class CommandExecutionError(DeploymentError):
    """Hook command exited non-zero or timed out."""

    def __init__(self, command: str, exit_code: Optional[int], stderr: str = ""):
        if exit_code is None:
            message = f"Command timed out: {command}"
        else:
            message = f"Command failed with exit code {exit_code}: {command}"
        if stderr:
            message = f"{message}\nstderr: {stderr}"
        super().__init__(message, code="command_failed")
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class RetentionError(DeploymentError):
    """Old release could not be pruned."""
    pass


class RollbackError(DeploymentError):
    """Rollback to the previous release did not complete cleanly."""
    pass
