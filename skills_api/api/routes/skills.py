from typing import Any, Literal

from fastapi import APIRouter, BackgroundTasks, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from skills_api.core.agents import SUPPORTED_AGENTS
from skills_api.core.registry import MAX_PAGE_SIZE, SkillRegistry, SkillSearchParams, paginate
from skills_api.core.services import Services

router = APIRouter(tags=["skills"])


class StatsResponse(BaseModel):
    scrapedAt: str
    totalSkills: int
    totalSources: int
    totalOwners: int
    totalInstalls: int


def _services(request: Request) -> Services:
    return request.app.state.services


def _registry(request: Request) -> SkillRegistry:
    return _services(request).registry


def _clamp_limit(limit: int) -> int:
    return min(MAX_PAGE_SIZE, max(1, limit))


def _not_found(message: str) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": message})


@router.get("")
async def search_skills(
    request: Request,
    query: str | None = None,
    owner: str | None = None,
    repo: str | None = None,
    sort_by: Literal["name", "installs"] = Query("installs", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    page: int = 1,
    page_size: int = Query(20, alias="pageSize"),
) -> dict[str, Any]:
    params = SkillSearchParams(
        query=query,
        owner=owner,
        repo=repo,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=page_size,
    )
    return _registry(request).search(params)


@router.get("/top")
async def top_skills(request: Request, limit: int = 100) -> dict[str, Any]:
    skills = _registry(request).top_skills(_clamp_limit(limit))
    return {"skills": [skill.to_dict() for skill in skills], "total": len(skills)}


@router.get("/sources")
async def list_sources(
    request: Request,
    page: int = 1,
    page_size: int = Query(50, alias="pageSize"),
) -> dict[str, Any]:
    result = paginate(_registry(request).sources(), page, page_size)
    result["sources"] = result.pop("items")
    return result


@router.get("/sources/top")
async def top_sources(request: Request, limit: int = 50) -> dict[str, Any]:
    sources = _registry(request).top_sources(_clamp_limit(limit))
    return {"sources": sources, "total": len(sources)}


@router.get("/owners")
async def list_owners(
    request: Request,
    page: int = 1,
    page_size: int = Query(50, alias="pageSize"),
) -> dict[str, Any]:
    result = paginate(_registry(request).owners(), page, page_size)
    result["owners"] = result.pop("items")
    return result


@router.get("/agents")
async def list_agents() -> dict[str, Any]:
    return {
        "agents": [agent.to_dict() for agent in SUPPORTED_AGENTS],
        "total": len(SUPPORTED_AGENTS),
    }


@router.get("/stats", response_model=StatsResponse)
async def stats(request: Request) -> StatsResponse:
    registry = _registry(request)
    return StatsResponse(**registry.metadata(), totalInstalls=registry.total_installs())


@router.get("/by-source/{owner}/{repo}", response_model=None)
async def skills_by_source(request: Request, owner: str, repo: str) -> dict[str, Any] | JSONResponse:
    source = f"{owner}/{repo}"
    skills = _registry(request).skills_for_source(source)
    if not skills:
        return _not_found(f'No skills found for source "{source}"')
    return {
        "source": source,
        "githubUrl": f"https://github.com/{source}",
        "skills": [skill.to_dict() for skill in skills],
        "total": len(skills),
        "totalInstalls": sum(skill.installs for skill in skills),
    }


@router.get("/{skill_id}", response_model=None)
async def get_skill(request: Request, skill_id: str) -> dict[str, Any] | JSONResponse:
    skill = _registry(request).find_skill(skill_id)
    if skill is None:
        return _not_found(f'Skill "{skill_id}" not found')
    return skill.to_dict()


@router.get("/{owner}/{repo}/{skill_id}", response_model=None)
async def get_skill_in_source(
    request: Request, owner: str, repo: str, skill_id: str
) -> dict[str, Any] | JSONResponse:
    source = f"{owner}/{repo}"
    skill = _registry(request).find_skill(skill_id, source=source)
    if skill is None:
        return _not_found(f'Skill "{skill_id}" not found in source "{source}"')
    return {**skill.to_dict(), "installCommand": f"npx skills add {source}/{skill_id}"}


@router.get("/{owner}/{repo}/{skill_id}/files", response_model=None)
async def get_skill_files(
    request: Request,
    background_tasks: BackgroundTasks,
    owner: str,
    repo: str,
    skill_id: str,
    branch: str = "main",
) -> dict[str, Any] | JSONResponse:
    services = _services(request)
    cached = await services.store.load_skill_files(owner, repo, skill_id)
    if cached:
        return cached

    result = await services.github.fetch_skill_files(owner, repo, skill_id, branch)
    if not result.success:
        return _not_found(result.error or f'Files for "{skill_id}" not found')

    payload = {
        "skillId": skill_id,
        "owner": owner,
        "repo": repo,
        "branch": branch,
        "files": [item.to_dict() for item in result.files],
    }
    if services.store.object_store is not None:
        background_tasks.add_task(services.store.save_skill_files, owner, repo, skill_id, payload)
    return payload


@router.get("/{owner}/{repo}/{skill_id}/content", response_model=None)
async def get_skill_content(
    request: Request,
    owner: str,
    repo: str,
    skill_id: str,
    branch: str = "main",
) -> dict[str, Any] | JSONResponse:
    result = await _services(request).github.fetch_skill_content(owner, repo, skill_id, branch)
    if not result.success or result.content is None:
        return _not_found(result.error or f'SKILL.md for "{skill_id}" not found')
    return {
        "source": f"{owner}/{repo}",
        "skillId": skill_id,
        "path": result.path,
        "metadata": result.content.metadata,
        "instructions": result.content.instructions,
        "raw": result.content.raw,
    }
