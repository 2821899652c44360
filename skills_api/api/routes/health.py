from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel

from skills_api.core.models import utc_now_iso

router = APIRouter(tags=["health"])

ENDPOINTS = {
    "skills": "/api/skills",
    "topSkills": "/api/skills/top",
    "sources": "/api/skills/sources",
    "topSources": "/api/skills/sources/top",
    "owners": "/api/skills/owners",
    "agents": "/api/skills/agents",
    "stats": "/api/skills/stats",
    "bySource": "/api/skills/by-source/:owner/:repo",
    "skill": "/api/skills/:skillId",
    "skillBySource": "/api/skills/:owner/:repo/:skillId",
    "skillContent": "/api/skills/:owner/:repo/:skillId/content",
    "skillFiles": "/api/skills/:owner/:repo/:skillId/files",
    "adminStatus": "/api/admin/status",
    "adminRefresh": "POST /api/admin/refresh",
}


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    service: str


@router.get("/")
async def root(request: Request) -> dict[str, Any]:
    registry = request.app.state.services.registry
    return {
        "name": "Skills.sh API",
        "version": request.app.version,
        "description": "A marketplace API for Agent Skills",
        "data": registry.metadata(),
        "endpoints": ENDPOINTS,
    }


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", timestamp=utc_now_iso(), service="skills-api")
