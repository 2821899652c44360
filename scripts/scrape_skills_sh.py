#!/usr/bin/env python3
"""
Scrape the skills.sh leaderboard into a snapshot file.

Usage:
  python scripts/scrape_skills_sh.py
  python scripts/scrape_skills_sh.py --out data/skills-data.json
  python scripts/scrape_skills_sh.py --verify --dry-run
  python scripts/scrape_skills_sh.py --skip-validation
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from skills_api.analyzers.staleness import StalenessReconciler
from skills_api.analyzers.validation import validate_scraped_data
from skills_api.core.config import LOG_FORMAT, load_settings
from skills_api.core.models import ScrapedData, utc_now_iso
from skills_api.core.snapshot_store import BUNDLED_DATA_PATH, SnapshotStore
from skills_api.fetchers.github_skill_repo import GitHubSkillRepoClient
from skills_api.fetchers.skills_sh_scraper import (
    ScraperError,
    SkillsShScraper,
    enrich_skills,
    unique_owners,
    unique_sources,
)

LOGGER = logging.getLogger("scrape_skills_sh")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scrape skills.sh into a snapshot JSON file.")
    parser.add_argument(
        "--out",
        default=str(BUNDLED_DATA_PATH),
        help="Snapshot file to write (default: the bundled dataset).",
    )
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Drop skills whose directory no longer exists on GitHub (needs GITHUB_TOKEN).",
    )
    parser.add_argument(
        "--skip-validation",
        action="store_true",
        help="Write the snapshot even if validation fails.",
    )
    parser.add_argument("--dry-run", action="store_true", help="Scrape and validate without writing.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level.",
    )
    return parser.parse_args()


async def run() -> int:
    args = parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)
    settings = load_settings()
    out_path = Path(args.out)

    try:
        raw_skills = await SkillsShScraper().fetch_skills()
    except ScraperError as exc:
        LOGGER.error("Scrape failed: %s", exc)
        return 1
    skills = enrich_skills(raw_skills)
    LOGGER.info("Scraped %d skills", len(skills))

    stale_removed = 0
    if args.verify:
        store = SnapshotStore(data_dir=out_path.parent)
        async with GitHubSkillRepoClient(token=settings.github_token) as github:
            stale = await StalenessReconciler(store, github).run(skills)
        if not stale.skipped:
            skills = stale.filtered
            stale_removed = stale.removed

    validation = validate_scraped_data(skills)
    for warning in validation.warnings:
        LOGGER.warning("Validation warning: %s", warning)
    for error in validation.errors:
        LOGGER.error("Validation error: %s", error)

    data = ScrapedData(
        scraped_at=utc_now_iso(),
        total_skills=len(skills),
        total_sources=len(unique_sources(skills)),
        total_owners=len(unique_owners(skills)),
        skills=skills,
    )
    summary = {
        **data.metadata(),
        "staleRemoved": stale_removed,
        "validation": validation.to_dict(),
        "written": None,
    }

    if not validation.valid and not args.skip_validation:
        print(json.dumps({"summary": summary}, ensure_ascii=False))
        return 1

    if not args.dry_run:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(
            json.dumps(data.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8"
        )
        summary["written"] = str(out_path)
        LOGGER.info("Wrote %d skills to %s", data.total_skills, out_path)

    print(json.dumps({"summary": summary}, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(run()))
