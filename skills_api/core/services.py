"""Wire settings into the storage, registry, GitHub and refresh services."""

from __future__ import annotations

from dataclasses import dataclass

from skills_api.analyzers.staleness import StalenessReconciler
from skills_api.core.config import Settings
from skills_api.core.registry import SkillRegistry
from skills_api.core.snapshot_store import SnapshotStore
from skills_api.core.storage import SupabaseObjectStore, get_supabase_client
from skills_api.fetchers.github_skill_repo import GitHubSkillRepoClient
from skills_api.fetchers.skills_sh_scraper import SkillsShScraper
from skills_api.workers.refresh import RefreshOrchestrator


@dataclass
class Services:
    settings: Settings
    store: SnapshotStore
    registry: SkillRegistry
    github: GitHubSkillRepoClient
    orchestrator: RefreshOrchestrator

    async def aclose(self) -> None:
        await self.orchestrator.shutdown()
        await self.store.drain()
        await self.github.aclose()


def build_store(settings: Settings) -> SnapshotStore:
    object_store = None
    if settings.object_store_configured:
        client = get_supabase_client(settings.supabase_url, settings.supabase_key)
        object_store = SupabaseObjectStore(client, settings.skills_bucket or "")
    return SnapshotStore(
        object_store=object_store,
        data_dir=settings.data_dir,
        object_key=settings.object_key,
    )


def build_services(settings: Settings, store: SnapshotStore | None = None) -> Services:
    store = store or build_store(settings)
    registry = SkillRegistry(store)
    github = GitHubSkillRepoClient(token=settings.github_token)
    orchestrator = RefreshOrchestrator(
        scraper=SkillsShScraper(),
        store=store,
        registry=registry,
        reconciler=StalenessReconciler(store, github),
        timeout_seconds=settings.refresh_timeout_seconds,
    )
    return Services(
        settings=settings,
        store=store,
        registry=registry,
        github=github,
        orchestrator=orchestrator,
    )
