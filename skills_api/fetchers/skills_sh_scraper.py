"""skills.sh leaderboard scraper and registry enrichment."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Iterable
from typing import Any

import httpx
from bs4 import BeautifulSoup

from skills_api.core.models import EnrichedSkill, RawSkill

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://skills.sh"
GITHUB_BASE_URL = "https://github.com"
USER_AGENT = "skills-api skills.sh scraper"

# The leaderboard ships its data inside an escaped RSC payload: allTimeSkills\":[{...}]
ALL_TIME_SKILLS_RE = re.compile(r'allTimeSkills\\":\[(.*?)\]', re.DOTALL)


class ScraperError(Exception):
    """Raised when the marketplace page cannot be fetched or parsed."""


def extract_all_time_skills(html: str) -> list[dict[str, Any]]:
    """Pull the raw allTimeSkills records out of the leaderboard HTML."""
    soup = BeautifulSoup(html, "html.parser")
    candidates = [script.get_text() for script in soup.find_all("script")]
    candidates.append(html)

    for text in candidates:
        match = ALL_TIME_SKILLS_RE.search(text or "")
        if not match:
            continue
        json_str = "[" + match.group(1) + "]"
        json_str = json_str.replace('\\"', '"')
        try:
            payload = json.loads(json_str)
        except json.JSONDecodeError as exc:
            raise ScraperError(f"Could not decode allTimeSkills payload: {exc}") from exc
        if not isinstance(payload, list):
            raise ScraperError("allTimeSkills payload is not a list")
        return [item for item in payload if isinstance(item, dict)]

    raise ScraperError("Could not find allTimeSkills in page")


def parse_skills_page(html: str) -> list[RawSkill]:
    return [RawSkill.from_dict(item) for item in extract_all_time_skills(html)]


def format_display_name(name: str) -> str:
    """'react-best-practices' -> 'React Best Practices'."""
    return " ".join(word[:1].upper() + word[1:] for word in name.split("-"))


def split_source(source: str) -> tuple[str, str]:
    """Split 'owner/repo' on the first slash; a source without one is all owner."""
    owner, _sep, repo = source.partition("/")
    return owner, repo


def enrich_skill(skill: RawSkill) -> EnrichedSkill:
    owner, repo = split_source(skill.source)
    return EnrichedSkill(
        source=skill.source,
        skill_id=skill.skill_id,
        name=skill.name,
        installs=skill.installs,
        owner=owner,
        repo=repo,
        github_url=f"{GITHUB_BASE_URL}/{skill.source}",
        display_name=format_display_name(skill.name),
    )


def enrich_skills(skills: Iterable[RawSkill]) -> list[EnrichedSkill]:
    return [enrich_skill(skill) for skill in skills]


def unique_sources(skills: Iterable[RawSkill | EnrichedSkill]) -> list[str]:
    return sorted({skill.source for skill in skills})


def unique_owners(skills: Iterable[RawSkill | EnrichedSkill]) -> list[str]:
    owners = {split_source(skill.source)[0] for skill in skills}
    owners.discard("")
    return sorted(owners)


def count_malformed_sources(skills: Iterable[EnrichedSkill]) -> int:
    return sum(1 for skill in skills if not skill.owner or not skill.repo)


class SkillsShScraper:
    """Fetch the skills.sh leaderboard and return its skill listing."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 20.0,
        attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.attempts = max(1, attempts)
        self.transport = transport

    async def _fetch_with_retry(self, client: httpx.AsyncClient, url: str) -> str:
        last_error: Exception | None = None
        for attempt in range(1, self.attempts + 1):
            try:
                resp = await client.get(url, follow_redirects=True)
                if resp.status_code >= 500:
                    raise ScraperError(f"Server error {resp.status_code} for {url}")
                if resp.status_code >= 400:
                    raise ScraperError(f"HTTP {resp.status_code} for {url}")
                return resp.text
            except (httpx.HTTPError, ScraperError) as exc:
                last_error = exc
                if attempt == self.attempts:
                    break
                await asyncio.sleep(min(8.0, 0.75 * (2 ** (attempt - 1))))
        raise ScraperError(f"Failed fetching {url}: {last_error}") from last_error

    async def fetch_skills(self) -> list[RawSkill]:
        """Scrape the leaderboard; raises ScraperError on fetch or parse failure."""
        headers = {"User-Agent": USER_AGENT}
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds),
            headers=headers,
            transport=self.transport,
        ) as client:
            html = await self._fetch_with_retry(client, f"{self.base_url}/")
        skills = parse_skills_page(html)
        LOGGER.info("Scraped %d skills from %s", len(skills), self.base_url)
        return skills
