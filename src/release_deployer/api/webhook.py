"""GitHub release webhook endpoint."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
from typing import Optional

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from release_deployer.core.exceptions import (
    BranchMismatchError,
    InvalidPayloadError,
    NoMatchingProjectError,
    SignatureError,
    UnsupportedEventError,
)
from release_deployer.core.models import ReleaseRequest
from release_deployer.deploy.manager import DeploymentOrchestrator

router = APIRouter()
logger = structlog.get_logger()

SIGNATURE_HEADER = "x-hub-signature-256"
EVENT_HEADER = "x-github-event"


def compute_signature(secret: str, body: bytes) -> str:
    return "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, signature: Optional[str], body: bytes) -> bool:
    """True when ``signature`` is the sha256 HMAC of ``body`` under ``secret``."""
    if not signature:
        return False
    return hmac.compare_digest(signature.encode("utf-8"), compute_signature(secret, body).encode("utf-8"))


def get_orchestrator(request: Request) -> DeploymentOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise RuntimeError("DeploymentOrchestrator not initialized")
    return orchestrator


@router.post("/webhook/github/release")
async def release_webhook(request: Request):
    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    event = request.headers.get(EVENT_HEADER)
    orchestrator = get_orchestrator(request)

    logger.debug("Received webhook", github_event=event)

    if not verify_signature(orchestrator.config.webhook_secret, signature, body):
        logger.warning("Invalid webhook signature")
        raise SignatureError("Invalid signature")

    if event != "release":
        logger.warning("Unsupported event type", github_event=event)
        raise UnsupportedEventError("This endpoint only handles release events")

    try:
        payload = json.loads(body)
    except ValueError:
        raise InvalidPayloadError("Request body is not valid JSON")
    if not isinstance(payload, dict):
        raise InvalidPayloadError("Request body must be a JSON object")

    action = payload.get("action")
    if action != "published":
        logger.info("Ignoring non-published release", action=action)
        return PlainTextResponse(f"Ignoring {action} action", status_code=200)

    release = ReleaseRequest.from_webhook(payload)
    project = orchestrator.find_project(release.repository_name)
    if project is None:
        logger.warning("No matching project", repo=release.repository_name)
        raise NoMatchingProjectError("No matching project configuration found")

    logger.info("Processing release", project=project.name, tag=release.tag_name)

    if project.branch and release.target_commitish != project.branch:
        logger.warning(
            "Branch mismatch",
            expected_branch=project.branch,
            actual_branch=release.target_commitish,
        )
        raise BranchMismatchError(
            f"Release branch {release.target_commitish} doesn't match configured branch {project.branch}"
        )

    # Blocking pipeline (subprocesses, file copies) runs off the event loop
    loop = asyncio.get_running_loop()
    record = await loop.run_in_executor(None, orchestrator.deploy, project, release)

    if not record.succeeded:
        logger.error(
            "Error processing webhook",
            project=project.name,
            deployment_id=record.deploymentId,
            error=record.error,
            rollback_error=record.rollback_error,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Failed to process release",
                "details": record.error,
                "deploymentId": record.deploymentId,
                "rollbackError": record.rollback_error,
            },
        )

    logger.info(
        "Release processed successfully",
        project=project.name,
        tag=release.tag_name,
        path=record.release_path,
    )
    return {
        "message": "Release processed successfully",
        "project": project.name,
        "extractPath": record.release_path,
        "deploymentId": record.deploymentId,
        "releaseInfo": release.summary(),
        "warnings": record.warnings,
    }
