from __future__ import annotations

from skills_api.analyzers.validation import (
    ValidationOptions,
    is_data_usable,
    validate_scraped_data,
)
from skills_api.core.models import EnrichedSkill, ScrapedData


def make_skills(count: int, sources: int = 200, installs: int = 10) -> list[EnrichedSkill]:
    skills = []
    for index in range(count):
        owner = f"owner-{index % sources}"
        repo = "skills"
        skills.append(
            EnrichedSkill(
                source=f"{owner}/{repo}",
                skill_id=f"skill-{index}",
                name=f"skill-{index}",
                installs=installs,
                owner=owner,
                repo=repo,
                github_url=f"https://github.com/{owner}/{repo}",
                display_name=f"Skill {index}",
            )
        )
    return skills


def previous(count: int) -> ScrapedData:
    skills = make_skills(count)
    return ScrapedData(
        scraped_at="2026-02-01T00:00:00.000Z",
        total_skills=count,
        total_sources=200,
        total_owners=200,
        skills=skills,
    )


def test_empty_result_is_rejected() -> None:
    result = validate_scraped_data([])

    assert not result.valid
    assert any(error.startswith("No skills scraped (empty result)") for error in result.errors)
    assert any(error.startswith("Skill count (0) below minimum threshold (1000)") for error in result.errors)
    assert result.stats.skill_count == 0
    assert result.stats.avg_installs == 0


def test_healthy_scrape_passes_with_stats() -> None:
    skills = make_skills(1500, installs=3)
    skills[0] = EnrichedSkill(**{**_fields(skills[0]), "installs": 4})

    result = validate_scraped_data(skills)

    assert result.valid
    assert result.errors == []
    assert result.stats.skill_count == 1500
    assert result.stats.source_count == 200
    assert result.stats.owner_count == 200
    assert result.stats.avg_installs == 3


def test_large_drop_against_previous_is_rejected() -> None:
    result = validate_scraped_data(
        make_skills(900), ValidationOptions(previous_data=previous(2000))
    )

    assert not result.valid
    assert (
        "Skill count dropped by 55.0% (2000 -> 900). "
        "This exceeds the maximum allowed drop of 50%."
    ) in result.errors


def test_small_drop_is_silent_and_moderate_drop_warns() -> None:
    small = validate_scraped_data(make_skills(1900), ValidationOptions(previous_data=previous(2000)))
    assert small.valid
    assert not any("dropped" in warning for warning in small.warnings)

    moderate = validate_scraped_data(
        make_skills(1600), ValidationOptions(previous_data=previous(2000))
    )
    assert moderate.valid
    assert "Skill count dropped by 20.0% (2000 -> 1600)." in moderate.warnings


def test_growth_never_warns_about_drops() -> None:
    result = validate_scraped_data(make_skills(2500), ValidationOptions(previous_data=previous(2000)))
    assert result.valid
    assert result.warnings == []


def test_source_threshold() -> None:
    result = validate_scraped_data(make_skills(1200, sources=40))

    assert not result.valid
    assert result.errors == [
        "Source count (40) below minimum threshold (100). This likely indicates incomplete data."
    ]


def test_malformed_sample_is_rejected() -> None:
    skills = make_skills(1200)
    for index in range(20):
        skills[index] = EnrichedSkill(**{**_fields(skills[index]), "skill_id": ""})

    result = validate_scraped_data(skills)

    assert not result.valid
    assert "20/100 sampled skills have missing required fields. Data structure may have changed." in result.errors


def test_duplicate_names_warn() -> None:
    skills = [EnrichedSkill(**{**_fields(skill), "name": "same"}) for skill in make_skills(1200)]

    result = validate_scraped_data(skills)

    assert result.valid
    assert "High duplicate name ratio detected (1 unique / 1200 total)." in result.warnings


def test_install_collapse_warns() -> None:
    result = validate_scraped_data(
        make_skills(2000, installs=1), ValidationOptions(previous_data=previous(2000))
    )
    assert "Total installs dropped significantly. This may indicate data issues." in result.warnings


def test_validation_is_idempotent() -> None:
    skills = make_skills(1200)
    options = ValidationOptions(previous_data=previous(1500))

    first = validate_scraped_data(skills, options)
    second = validate_scraped_data(skills, options)

    assert first.to_dict() == second.to_dict()


def test_is_data_usable() -> None:
    assert is_data_usable(make_skills(150))
    assert not is_data_usable(make_skills(50))

    broken = make_skills(150)
    broken[3] = EnrichedSkill(**{**_fields(broken[3]), "source": ""})
    assert not is_data_usable(broken)


def _fields(skill: EnrichedSkill) -> dict:
    return {
        "source": skill.source,
        "skill_id": skill.skill_id,
        "name": skill.name,
        "installs": skill.installs,
        "owner": skill.owner,
        "repo": skill.repo,
        "github_url": skill.github_url,
        "display_name": skill.display_name,
    }
