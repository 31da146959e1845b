"""Read-only deployment status endpoints."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException, Request

from release_deployer.api.webhook import get_orchestrator

router = APIRouter()


@router.get("/projects")
async def list_projects(request: Request) -> List[Dict[str, Any]]:
    orchestrator = get_orchestrator(request)
    projects = []
    for project in orchestrator.config.projects.values():
        current = orchestrator.current_release(project.name)
        projects.append({
            "name": project.name,
            "repository": project.github_repo,
            "branch": project.branch,
            "webRoot": project.web_root,
            "keepReleases": project.keep_releases,
            "currentRelease": str(current) if current else None,
            "deploying": orchestrator.locks.is_locked(project.name),
        })
    return projects


@router.get("/deployments/{deployment_id}")
async def deployment_status(deployment_id: str, request: Request) -> Dict[str, Any]:
    record = get_orchestrator(request).get(deployment_id)
    if not record:
        raise HTTPException(status_code=404, detail="Deployment not found")
    return record.as_details()
