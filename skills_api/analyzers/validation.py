"""Acceptance gate for scraped skills data.

Keeps a broken scrape from overwriting good persisted data.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from skills_api.core.models import EnrichedSkill, ScrapedData, ValidationResult, ValidationStats

REQUIRED_SAMPLE_SIZE = 10
MIN_USABLE_SKILLS = 100


@dataclass(frozen=True)
class ValidationOptions:
    min_skill_count: int = 1000
    min_source_count: int = 100
    max_drop_percentage: float = 50.0
    warn_drop_percentage: float = 10.0
    sample_size: int = 100
    max_malformed_ratio: float = 0.1
    previous_data: ScrapedData | None = None


def _is_malformed(skill: EnrichedSkill | None) -> bool:
    return skill is None or not skill.source or not skill.skill_id or not skill.name


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _format_pct(value: float) -> str:
    return f"{value:g}"


def validate_scraped_data(
    skills: Sequence[EnrichedSkill],
    options: ValidationOptions | None = None,
) -> ValidationResult:
    """Validate scraped skills data before saving."""
    opts = options or ValidationOptions()
    errors: list[str] = []
    warnings: list[str] = []

    skill_count = len(skills)
    sources = {skill.source for skill in skills}
    owners = {skill.owner for skill in skills}
    total_installs = sum(skill.installs for skill in skills)
    avg_installs = total_installs / skill_count if skill_count else 0.0

    stats = ValidationStats(
        skill_count=skill_count,
        source_count=len(sources),
        owner_count=len(owners),
        avg_installs=_round_half_up(avg_installs),
    )

    if skill_count < opts.min_skill_count:
        errors.append(
            f"Skill count ({skill_count}) below minimum threshold ({opts.min_skill_count}). "
            "This likely indicates a scraping failure."
        )

    if len(sources) < opts.min_source_count:
        errors.append(
            f"Source count ({len(sources)}) below minimum threshold ({opts.min_source_count}). "
            "This likely indicates incomplete data."
        )

    if skill_count == 0:
        errors.append("No skills scraped (empty result). The page structure may have changed.")

    sample_size = min(opts.sample_size, skill_count)
    malformed = sum(1 for skill in skills[:sample_size] if _is_malformed(skill))
    if malformed > sample_size * opts.max_malformed_ratio:
        errors.append(
            f"{malformed}/{sample_size} sampled skills have missing required fields. "
            "Data structure may have changed."
        )

    previous = opts.previous_data
    if previous is not None and previous.skills:
        previous_count = len(previous.skills)
        drop_percentage = (previous_count - skill_count) / previous_count * 100
        change = f"({previous_count} -> {skill_count})"

        if drop_percentage > opts.max_drop_percentage:
            errors.append(
                f"Skill count dropped by {drop_percentage:.1f}% {change}. "
                f"This exceeds the maximum allowed drop of {_format_pct(opts.max_drop_percentage)}%."
            )
        elif drop_percentage > opts.warn_drop_percentage:
            warnings.append(f"Skill count dropped by {drop_percentage:.1f}% {change}.")

        previous_installs = sum(skill.installs for skill in previous.skills)
        if total_installs < previous_installs * 0.5:
            warnings.append("Total installs dropped significantly. This may indicate data issues.")

    unique_names = {skill.name for skill in skills}
    if len(unique_names) < skill_count * 0.9:
        warnings.append(
            f"High duplicate name ratio detected "
            f"({len(unique_names)} unique / {skill_count} total)."
        )

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings, stats=stats)


def is_data_usable(skills: Sequence[EnrichedSkill]) -> bool:
    """Emergency check: enough records, and the first few are well formed."""
    if len(skills) < MIN_USABLE_SKILLS:
        return False
    return not any(_is_malformed(skill) for skill in skills[:REQUIRED_SAMPLE_SIZE])
