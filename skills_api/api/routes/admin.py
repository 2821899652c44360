from typing import Any

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from skills_api.core.services import Services
from skills_api.workers.refresh import (
    ALREADY_RUNNING_ERROR,
    DEFAULT_INTERVAL_MINUTES,
    MIN_INTERVAL_MINUTES,
)

router = APIRouter(tags=["admin"])


class SchedulerResponse(BaseModel):
    message: str
    intervalMinutes: int | None = None


def _services(request: Request) -> Services:
    return request.app.state.services


@router.get("/status")
async def status(request: Request) -> dict[str, Any]:
    services = _services(request)
    orchestrator = services.orchestrator
    last_result = orchestrator.last_result
    return {
        "scheduler": {
            "running": orchestrator.scheduler_running,
            "refreshing": orchestrator.refresh_in_progress,
            "state": orchestrator.state.value,
            "intervalMinutes": orchestrator.interval_minutes,
        },
        "storage": services.store.info(),
        "data": {
            "lastUpdated": orchestrator.current_data_timestamp(),
            "lastRefresh": last_result.to_dict() if last_result else None,
        },
    }


@router.post("/refresh")
async def refresh(
    request: Request,
    dry_run: bool = Query(False, alias="dryRun"),
) -> JSONResponse:
    orchestrator = _services(request).orchestrator
    if orchestrator.refresh_in_progress:
        return JSONResponse(status_code=409, content={"error": ALREADY_RUNNING_ERROR})

    result = await orchestrator.refresh(dry_run=dry_run)
    if result.status == "conflict":
        return JSONResponse(status_code=409, content={"error": result.error})
    if result.success:
        return JSONResponse(
            content={"message": "Refresh completed successfully", **result.to_dict()}
        )
    return JSONResponse(status_code=500, content={"message": "Refresh failed", **result.to_dict()})


@router.post(
    "/scheduler/start",
    response_model=SchedulerResponse,
    response_model_exclude_none=True,
)
async def start_scheduler(
    request: Request, interval: int = DEFAULT_INTERVAL_MINUTES
) -> SchedulerResponse:
    orchestrator = _services(request).orchestrator
    if orchestrator.scheduler_running:
        return SchedulerResponse(message="Scheduler already running")
    interval_minutes = max(MIN_INTERVAL_MINUTES, interval)
    orchestrator.start_scheduler(interval_minutes=interval_minutes, refresh_on_start=False)
    return SchedulerResponse(message="Scheduler started", intervalMinutes=interval_minutes)


@router.post(
    "/scheduler/stop",
    response_model=SchedulerResponse,
    response_model_exclude_none=True,
)
async def stop_scheduler(request: Request) -> SchedulerResponse:
    if not _services(request).orchestrator.stop_scheduler():
        return SchedulerResponse(message="Scheduler not running")
    return SchedulerResponse(message="Scheduler stopped")
