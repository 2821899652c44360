"""Drop registry entries whose skill directory no longer exists on GitHub.

Verification is fail-open: with no token, or when a repository cannot be
listed, skills are kept. A repository listing is cached per source for 24
hours so a refresh costs at most one tree fetch per source per day.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from skills_api.core.models import EnrichedSkill, VerificationCache, VerificationCacheEntry

if TYPE_CHECKING:
    from skills_api.core.snapshot_store import SnapshotStore
    from skills_api.fetchers.github_skill_repo import GitHubSkillRepoClient

LOGGER = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 24 * 60 * 60
DEFAULT_BATCH_SIZE = 10

ListDirs = Callable[[str, str], Awaitable[set[str] | None]]


@dataclass(slots=True)
class StaleFilterResult:
    filtered: list[EnrichedSkill]
    removed: int = 0
    removed_skills: list[dict[str, str]] = field(default_factory=list)
    repos_checked: int = 0
    skipped: bool = False
    cache: VerificationCache = field(default_factory=dict)


def filter_group(
    skills: Sequence[EnrichedSkill], dirs: set[str] | frozenset[str]
) -> tuple[list[EnrichedSkill], list[EnrichedSkill]]:
    """Apply the keep/drop policy for one source; returns (kept, dropped)."""
    if not dirs:
        return [], list(skills)
    if len(dirs) >= len(skills):
        return list(skills), []
    kept: list[EnrichedSkill] = []
    dropped: list[EnrichedSkill] = []
    for skill in skills:
        if skill.skill_id in dirs or skill.name in dirs:
            kept.append(skill)
        else:
            dropped.append(skill)
    return kept, dropped


def group_by_source(skills: Sequence[EnrichedSkill]) -> dict[str, list[EnrichedSkill]]:
    groups: dict[str, list[EnrichedSkill]] = {}
    for skill in skills:
        groups.setdefault(skill.source, []).append(skill)
    return groups


async def filter_stale_skills(
    skills: Sequence[EnrichedSkill],
    *,
    token: str | None,
    cache: VerificationCache,
    list_dirs: ListDirs,
    now: datetime | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    ttl_seconds: float = CACHE_TTL_SECONDS,
) -> StaleFilterResult:
    """Filter stale skills; the input cache is read-only and the merged cache is returned."""
    if not token:
        return StaleFilterResult(filtered=list(skills), skipped=True, cache=dict(cache))

    now = now or datetime.now(timezone.utc)
    merged: VerificationCache = dict(cache)
    groups = group_by_source(skills)

    resolved: dict[str, set[str] | frozenset[str] | None] = {}
    to_fetch: list[str] = []
    for source, members in groups.items():
        owner, repo = members[0].owner, members[0].repo
        if not owner or not repo:
            resolved[source] = None
            continue
        entry = cache.get(source)
        if entry is not None and entry.is_fresh(now, ttl_seconds):
            resolved[source] = entry.dirs
        else:
            to_fetch.append(source)

    repos_checked = 0
    size = max(1, batch_size)
    for start in range(0, len(to_fetch), size):
        batch = to_fetch[start : start + size]
        results = await asyncio.gather(
            *(list_dirs(groups[source][0].owner, groups[source][0].repo) for source in batch)
        )
        for source, dirs in zip(batch, results):
            resolved[source] = dirs
            if dirs is None:
                continue
            repos_checked += 1
            merged[source] = VerificationCacheEntry(validated_at=now, dirs=frozenset(dirs))

    dropped_by_source: dict[str, set[int]] = {}
    removed_skills: list[dict[str, str]] = []
    for source, members in groups.items():
        dirs = resolved.get(source)
        if dirs is None:
            continue
        _kept, dropped = filter_group(members, dirs)
        if dropped:
            dropped_by_source[source] = {id(skill) for skill in dropped}
            removed_skills.extend({"skillId": s.skill_id, "source": source} for s in dropped)
            LOGGER.info(
                "%s: %d of %d skills no longer found on GitHub",
                source,
                len(dropped),
                len(members),
            )

    filtered = [
        skill for skill in skills if id(skill) not in dropped_by_source.get(skill.source, ())
    ]
    return StaleFilterResult(
        filtered=filtered,
        removed=len(removed_skills),
        removed_skills=removed_skills,
        repos_checked=repos_checked,
        skipped=False,
        cache=merged,
    )


class StalenessReconciler:
    """Runs stale filtering against persisted cache state."""

    def __init__(
        self,
        store: SnapshotStore,
        github: GitHubSkillRepoClient,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.store = store
        self.github = github
        self.batch_size = batch_size

    async def run(self, skills: Sequence[EnrichedSkill]) -> StaleFilterResult:
        if not self.github.token:
            LOGGER.info("No GitHub token configured; skipping stale skill verification")
            return StaleFilterResult(filtered=list(skills), skipped=True)

        cache = await self.store.load_verification_cache()
        result = await filter_stale_skills(
            skills,
            token=self.github.token,
            cache=cache,
            list_dirs=self.github.list_skill_dirs,
            batch_size=self.batch_size,
        )
        if result.repos_checked > 0:
            await self.store.save_verification_cache(result.cache)
        return result
