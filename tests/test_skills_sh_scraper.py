from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import pytest

from skills_api.core.models import RawSkill
from skills_api.fetchers.skills_sh_scraper import (
    ScraperError,
    SkillsShScraper,
    count_malformed_sources,
    enrich_skill,
    enrich_skills,
    extract_all_time_skills,
    format_display_name,
    parse_skills_page,
    split_source,
    unique_owners,
    unique_sources,
)

FIXTURES = Path(__file__).parent / "fixtures"


def test_parse_skills_page_fixture() -> None:
    html = (FIXTURES / "skills_sh_leaderboard.html").read_text(encoding="utf-8")
    skills = parse_skills_page(html)

    assert [skill.skill_id for skill in skills] == [
        "vercel-react-best-practices",
        "frontend-design",
        "orphan-skill",
    ]
    assert skills[0] == RawSkill(
        source="vercel-labs/agent-skills",
        skill_id="vercel-react-best-practices",
        name="vercel-react-best-practices",
        installs=48210,
    )


def test_extract_all_time_skills_from_raw_html_without_script() -> None:
    html = '<div data-x="allTimeSkills\\":[{\\"source\\":\\"a/b\\",\\"skillId\\":\\"s\\",\\"name\\":\\"s\\",\\"installs\\":3}]"></div>'
    records = extract_all_time_skills(html)

    assert records == [{"source": "a/b", "skillId": "s", "name": "s", "installs": 3}]


def test_extract_all_time_skills_missing_array_raises() -> None:
    with pytest.raises(ScraperError, match="allTimeSkills"):
        extract_all_time_skills("<html><script>var x = 1;</script></html>")


def test_extract_all_time_skills_invalid_json_raises() -> None:
    with pytest.raises(ScraperError):
        extract_all_time_skills('<script>allTimeSkills\\":[{\\"source\\": oops}]</script>')


def test_format_display_name() -> None:
    assert format_display_name("react-best-practices") == "React Best Practices"
    assert format_display_name("pdf") == "Pdf"


def test_split_source_first_slash() -> None:
    assert split_source("vercel-labs/agent-skills") == ("vercel-labs", "agent-skills")
    assert split_source("owner/repo/extra") == ("owner", "repo/extra")
    assert split_source("standalone") == ("standalone", "")


def test_enrich_skill_keeps_owner_repo_consistent_with_source() -> None:
    skill = enrich_skill(
        RawSkill(source="anthropics/skills", skill_id="frontend-design", name="frontend-design", installs=5)
    )

    assert skill.owner == "anthropics"
    assert skill.repo == "skills"
    assert f"{skill.owner}/{skill.repo}" == skill.source
    assert skill.github_url == "https://github.com/anthropics/skills"
    assert skill.display_name == "Frontend Design"
    assert skill.installs == 5


def test_enrich_skills_keeps_malformed_sources() -> None:
    skills = enrich_skills(
        [
            RawSkill(source="a/b", skill_id="x", name="x"),
            RawSkill(source="broken", skill_id="y", name="y"),
        ]
    )

    assert len(skills) == 2
    assert count_malformed_sources(skills) == 1
    assert unique_sources(skills) == ["a/b", "broken"]
    assert unique_owners(skills) == ["a", "broken"]


def test_fetch_skills_retries_server_errors() -> None:
    html = (FIXTURES / "skills_sh_leaderboard.html").read_text(encoding="utf-8")
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        if len(calls) == 1:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, text=html)

    scraper = SkillsShScraper(
        base_url="https://skills.test",
        attempts=2,
        transport=httpx.MockTransport(handler),
    )
    skills = asyncio.run(scraper.fetch_skills())

    assert len(calls) == 2
    assert len(skills) == 3


def test_fetch_skills_raises_after_client_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="gone")

    scraper = SkillsShScraper(
        base_url="https://skills.test",
        attempts=1,
        transport=httpx.MockTransport(handler),
    )
    with pytest.raises(ScraperError, match="HTTP 404"):
        asyncio.run(scraper.fetch_skills())
