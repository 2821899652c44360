"""In-process read cache of the accepted registry snapshot."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Literal

from skills_api.core.models import EnrichedSkill, ScrapedData
from skills_api.core.snapshot_store import SnapshotStore

LOGGER = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

SortBy = Literal["name", "installs"]
SortOrder = Literal["asc", "desc"]


@dataclass(frozen=True)
class SkillSearchParams:
    query: str | None = None
    owner: str | None = None
    repo: str | None = None
    sort_by: SortBy = "installs"
    sort_order: SortOrder = "desc"
    page: int = 1
    page_size: int = 20


def paginate(items: list[Any], page: int, page_size: int) -> dict[str, Any]:
    page = max(1, page)
    page_size = min(MAX_PAGE_SIZE, max(1, page_size))
    total = len(items)
    start = (page - 1) * page_size
    return {
        "items": items[start : start + page_size],
        "total": total,
        "page": page,
        "pageSize": page_size,
        "totalPages": math.ceil(total / page_size),
    }


class SkillRegistry:
    """Holds one ScrapedData snapshot; swapped whole after each accepted refresh."""

    def __init__(self, store: SnapshotStore) -> None:
        self.store = store
        self._data: ScrapedData | None = None

    @property
    def loaded(self) -> bool:
        return self._data is not None

    async def initialize(self) -> None:
        if self._data is None:
            self._data = await self.store.load()

    async def reload(self) -> None:
        self._data = await self.store.load()

    def replace(self, data: ScrapedData) -> None:
        self._data = data
        LOGGER.info("Registry now serving %d skills (%s)", len(data.skills), data.scraped_at)

    @property
    def data(self) -> ScrapedData:
        if self._data is None:
            self._data = self.store.load_local()
        return self._data

    def skills(self) -> list[EnrichedSkill]:
        return self.data.skills

    def metadata(self) -> dict[str, Any]:
        return self.data.metadata()

    def total_installs(self) -> int:
        return sum(skill.installs for skill in self.skills())

    def sources(self) -> list[dict[str, Any]]:
        by_source: dict[str, dict[str, Any]] = {}
        for skill in self.skills():
            entry = by_source.get(skill.source)
            if entry is None:
                by_source[skill.source] = {
                    "source": skill.source,
                    "owner": skill.owner,
                    "repo": skill.repo,
                    "skillCount": 1,
                    "totalInstalls": skill.installs,
                }
            else:
                entry["skillCount"] += 1
                entry["totalInstalls"] += skill.installs
        return sorted(by_source.values(), key=lambda item: item["totalInstalls"], reverse=True)

    def owners(self) -> list[dict[str, Any]]:
        by_owner: dict[str, dict[str, Any]] = {}
        for skill in self.skills():
            entry = by_owner.setdefault(
                skill.owner, {"owner": skill.owner, "skillCount": 0, "totalInstalls": 0}
            )
            entry["skillCount"] += 1
            entry["totalInstalls"] += skill.installs
        return sorted(by_owner.values(), key=lambda item: item["totalInstalls"], reverse=True)

    def top_skills(self, limit: int = 100) -> list[EnrichedSkill]:
        return sorted(self.skills(), key=lambda skill: skill.installs, reverse=True)[:limit]

    def top_sources(self, limit: int = 50) -> list[dict[str, Any]]:
        return self.sources()[:limit]

    def skills_for_source(self, source: str) -> list[EnrichedSkill]:
        matches = [skill for skill in self.skills() if skill.source == source]
        return sorted(matches, key=lambda skill: skill.installs, reverse=True)

    def find_skill(self, skill_id: str, source: str | None = None) -> EnrichedSkill | None:
        for skill in self.skills():
            if source is not None and skill.source != source:
                continue
            if skill.skill_id == skill_id or skill.name == skill_id:
                return skill
        return None

    def search(self, params: SkillSearchParams) -> dict[str, Any]:
        filtered = list(self.skills())

        if params.query:
            needle = params.query.lower()
            filtered = [
                skill
                for skill in filtered
                if needle in skill.name.lower()
                or needle in skill.display_name.lower()
                or needle in skill.source.lower()
                or needle in skill.skill_id.lower()
            ]
        if params.owner:
            filtered = [skill for skill in filtered if skill.owner == params.owner]
        if params.repo:
            filtered = [skill for skill in filtered if skill.source == params.repo]

        reverse = params.sort_order == "desc"
        if params.sort_by == "name":
            filtered.sort(key=lambda skill: skill.name.lower(), reverse=reverse)
        else:
            filtered.sort(key=lambda skill: skill.installs, reverse=reverse)

        page = paginate(filtered, params.page, params.page_size)
        return {
            "skills": [skill.to_dict() for skill in page["items"]],
            "total": page["total"],
            "page": page["page"],
            "pageSize": page["pageSize"],
            "totalPages": page["totalPages"],
        }
