from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from skills_api.api.routes import admin, health, skills
from skills_api.core.config import Settings, load_settings
from skills_api.core.services import Services, build_services

LOGGER = logging.getLogger(__name__)

API_PREFIX = "/api"
SKILLS_PREFIX = f"{API_PREFIX}/skills"
GITHUB_CACHE_CONTROL = "public, max-age=3600, stale-while-revalidate=60"
DATA_CACHE_CONTROL = "public, max-age=300, stale-while-revalidate=60"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    services: Services = app.state.services
    await services.registry.initialize()
    if services.settings.auto_refresh:
        services.orchestrator.start_scheduler(
            interval_minutes=services.settings.refresh_interval_minutes,
            refresh_on_start=False,
        )
    try:
        yield
    finally:
        await services.aclose()


def _is_github_backed(path: str) -> bool:
    return path.endswith("/files") or path.endswith("/content")


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    if services is None:
        services = build_services(settings or load_settings())

    app = FastAPI(title="Skills.sh API", version="0.1.0", lifespan=lifespan)
    app.state.services = services

    @app.middleware("http")
    async def cache_headers(request: Request, call_next):  # type: ignore[no-untyped-def]
        path = request.url.path
        if not (path == SKILLS_PREFIX or path.startswith(f"{SKILLS_PREFIX}/")):
            return await call_next(request)

        if _is_github_backed(path):
            response = await call_next(request)
            response.headers["Cache-Control"] = GITHUB_CACHE_CONTROL
            return response

        etag = f'"{services.registry.metadata()["scrapedAt"]}"'
        if request.headers.get("if-none-match") == etag:
            return Response(
                status_code=304,
                headers={"ETag": etag, "Cache-Control": DATA_CACHE_CONTROL},
            )

        response = await call_next(request)
        response.headers["Cache-Control"] = DATA_CACHE_CONTROL
        response.headers["ETag"] = etag
        return response

    app.add_middleware(GZipMiddleware, minimum_size=1000)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):  # type: ignore[no-untyped-def]
        started = time.perf_counter()
        response = await call_next(request)
        LOGGER.info(
            "%s %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in services.settings.cors_origin.split(",")],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content={
                    "error": "Not Found",
                    "message": f"Route {request.method} {request.url.path} not found",
                },
            )
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(Exception)
    async def server_error(request: Request, exc: Exception) -> JSONResponse:
        LOGGER.exception("Server error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "message": str(exc)},
        )

    app.include_router(health.router)
    app.include_router(skills.router, prefix=SKILLS_PREFIX)
    app.include_router(admin.router, prefix=f"{API_PREFIX}/admin")
    return app
