"""Scheduled refresh of the skills registry.

One refresh runs at a time: scrape skills.sh, enrich, drop stale skills, validate
against the previous snapshot, then persist and swap the in-memory registry.
A rejected or failed refresh leaves the previous snapshot untouched.
"""

from __future__ import annotations

import argparse
import asyncio
import enum
import json
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Protocol

from skills_api.analyzers.staleness import StaleFilterResult
from skills_api.analyzers.validation import ValidationOptions, validate_scraped_data
from skills_api.core.models import (
    EnrichedSkill,
    RawSkill,
    RefreshResult,
    ScrapedData,
    ValidationResult,
    utc_now_iso,
)
from skills_api.fetchers.skills_sh_scraper import (
    count_malformed_sources,
    enrich_skills,
    unique_owners,
    unique_sources,
)

if TYPE_CHECKING:
    from skills_api.core.registry import SkillRegistry
    from skills_api.core.snapshot_store import SnapshotStore

LOGGER = logging.getLogger(__name__)

MIN_INTERVAL_MINUTES = 5
DEFAULT_INTERVAL_MINUTES = 30
ALREADY_RUNNING_ERROR = "Refresh already in progress"


class SkillSource(Protocol):
    async def fetch_skills(self) -> list[RawSkill]: ...


class Reconciler(Protocol):
    async def run(self, skills: Sequence[EnrichedSkill]) -> StaleFilterResult: ...


class RefreshState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(slots=True)
class _Candidate:
    skills: list[EnrichedSkill]
    source_count: int
    owner_count: int
    stale_removed: int
    validation: ValidationResult


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class RefreshOrchestrator:
    """Owns the refresh guard, the last result, and the periodic timer."""

    def __init__(
        self,
        scraper: SkillSource,
        store: SnapshotStore,
        registry: SkillRegistry,
        reconciler: Reconciler | None = None,
        validation_options: ValidationOptions | None = None,
        timeout_seconds: float | None = 600.0,
    ) -> None:
        self.scraper = scraper
        self.store = store
        self.registry = registry
        self.reconciler = reconciler
        self.validation_options = validation_options or ValidationOptions()
        self.timeout_seconds = timeout_seconds
        self._state = RefreshState.IDLE
        self._refreshing = False
        self._last_result: RefreshResult | None = None
        self._last_state: RefreshState | None = None
        self._timer: asyncio.Task[None] | None = None
        self._stop: asyncio.Event | None = None
        self._draining: set[asyncio.Task[None]] = set()
        self._interval_minutes: int | None = None

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def last_state(self) -> RefreshState | None:
        """Terminal state of the most recent finished refresh."""
        return self._last_state

    @property
    def refresh_in_progress(self) -> bool:
        return self._refreshing

    @property
    def last_result(self) -> RefreshResult | None:
        return self._last_result

    @property
    def scheduler_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def interval_minutes(self) -> int | None:
        return self._interval_minutes if self.scheduler_running else None

    def current_data_timestamp(self) -> str | None:
        try:
            return self.registry.metadata().get("scrapedAt") or None
        except Exception:  # noqa: BLE001
            return None

    async def _load_previous(self) -> ScrapedData | None:
        try:
            previous = await self.store.load(seed=False)
        except Exception as exc:  # noqa: BLE001
            LOGGER.info("No previous data to compare against: %s", exc)
            return None
        if not previous.skills:
            LOGGER.info("No previous data to compare against")
            return None
        return previous

    async def _collect(self, previous: ScrapedData | None) -> _Candidate:
        scraped = await self.scraper.fetch_skills()
        enriched = enrich_skills(scraped)

        malformed = count_malformed_sources(enriched)
        if malformed:
            LOGGER.warning("%d scraped skills have a malformed source", malformed)

        stale_removed = 0
        if self.reconciler is not None:
            stale = await self.reconciler.run(enriched)
            if not stale.skipped:
                enriched = stale.filtered
                stale_removed = stale.removed
                if stale.removed:
                    LOGGER.info(
                        "Filtered %d stale skills (%d repos checked)",
                        stale.removed,
                        stale.repos_checked,
                    )

        options = replace(self.validation_options, previous_data=previous)
        validation = validate_scraped_data(enriched, options)
        for warning in validation.warnings:
            LOGGER.warning("Validation warning: %s", warning)

        return _Candidate(
            skills=enriched,
            source_count=len(unique_sources(enriched)),
            owner_count=len(unique_owners(enriched)),
            stale_removed=stale_removed,
            validation=validation,
        )

    def _finish(self, result: RefreshResult, state: RefreshState) -> RefreshResult:
        self._last_result = result
        self._last_state = state
        self._state = state
        return result

    async def refresh(self, dry_run: bool = False) -> RefreshResult:
        """Run one refresh; never raises, and never runs two at once."""
        if self._refreshing:
            return RefreshResult(
                status="conflict",
                timestamp=utc_now_iso(),
                error=ALREADY_RUNNING_ERROR,
            )

        self._refreshing = True
        self._state = RefreshState.RUNNING
        start = time.monotonic()
        storage_type = self.store.active_storage_type()

        try:
            LOGGER.info("Starting skills refresh...")
            previous = await self._load_previous()
            try:
                candidate = await asyncio.wait_for(self._collect(previous), self.timeout_seconds)
            except asyncio.TimeoutError as exc:
                raise TimeoutError(
                    f"Refresh timed out after {self.timeout_seconds:g}s"
                ) from exc
            validation = candidate.validation

            if not validation.valid:
                for error in validation.errors:
                    LOGGER.error("Validation FAILED - not saving data: %s", error)
                result = RefreshResult(
                    status="rejected",
                    timestamp=utc_now_iso(),
                    error=f"Validation failed: {'; '.join(validation.errors)}",
                    duration_ms=_elapsed_ms(start),
                    storage_type=storage_type,
                    validation=validation,
                    skill_count=len(candidate.skills),
                    source_count=candidate.source_count,
                    stale_removed=candidate.stale_removed,
                )
                return self._finish(result, RefreshState.REJECTED)

            LOGGER.info(
                "Validation passed: %d skills, %d sources",
                validation.stats.skill_count,
                validation.stats.source_count,
            )
            output = ScrapedData(
                scraped_at=utc_now_iso(),
                total_skills=len(candidate.skills),
                total_sources=candidate.source_count,
                total_owners=candidate.owner_count,
                skills=candidate.skills,
            )

            if dry_run:
                result = RefreshResult(
                    status="success",
                    timestamp=output.scraped_at,
                    skill_count=output.total_skills,
                    source_count=output.total_sources,
                    owner_count=output.total_owners,
                    duration_ms=_elapsed_ms(start),
                    storage_type=storage_type,
                    validation=validation,
                    stale_removed=candidate.stale_removed,
                    dry_run=True,
                )
                LOGGER.info("Dry run: not saving %d skills", output.total_skills)
                return self._finish(result, RefreshState.ACCEPTED)

            saved_to = await self.store.save(output)
            if not saved_to.any_saved:
                result = RefreshResult(
                    status="failed",
                    timestamp=utc_now_iso(),
                    error="No storage backend accepted the new snapshot",
                    duration_ms=_elapsed_ms(start),
                    storage_type=storage_type,
                    saved_to=saved_to,
                    validation=validation,
                )
                LOGGER.error("Refresh failed: %s", result.error)
                return self._finish(result, RefreshState.FAILED)

            self.registry.replace(output)

            result = RefreshResult(
                status="success",
                timestamp=output.scraped_at,
                skill_count=output.total_skills,
                source_count=output.total_sources,
                owner_count=output.total_owners,
                duration_ms=_elapsed_ms(start),
                storage_type=storage_type,
                saved_to=saved_to,
                validation=validation,
                stale_removed=candidate.stale_removed,
            )
            LOGGER.info(
                "Refresh complete: %d skills, %d sources in %dms",
                output.total_skills,
                output.total_sources,
                result.duration_ms,
            )
            if saved_to.object_store:
                LOGGER.info("Data saved to object store")
            if saved_to.filesystem:
                LOGGER.info("Data saved to filesystem")
            return self._finish(result, RefreshState.ACCEPTED)
        except Exception as exc:  # noqa: BLE001
            result = RefreshResult(
                status="failed",
                timestamp=utc_now_iso(),
                error=str(exc) or exc.__class__.__name__,
                duration_ms=_elapsed_ms(start),
            )
            LOGGER.error("Refresh failed: %s", result.error)
            return self._finish(result, RefreshState.FAILED)
        finally:
            self._refreshing = False
            self._state = RefreshState.IDLE

    # Periodic timer

    def start_scheduler(
        self,
        interval_minutes: int = DEFAULT_INTERVAL_MINUTES,
        refresh_on_start: bool = False,
        on_refresh: Callable[[RefreshResult], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> bool:
        """Start the periodic refresh task; returns False if it is already running."""
        if self.scheduler_running:
            LOGGER.info("Scheduler already running")
            return False

        interval = max(MIN_INTERVAL_MINUTES, interval_minutes)
        self._interval_minutes = interval
        LOGGER.info(
            "Starting scheduler with %d minute interval (storage: %s)",
            interval,
            self.store.active_storage_type(),
        )
        self._stop = asyncio.Event()
        self._timer = asyncio.get_running_loop().create_task(
            self._run_timer(interval * 60, self._stop, refresh_on_start, on_refresh, on_error)
        )
        return True

    async def _tick(
        self,
        on_refresh: Callable[[RefreshResult], None] | None,
        on_error: Callable[[Exception], None] | None,
    ) -> None:
        try:
            result = await self.refresh()
            if on_refresh is not None:
                on_refresh(result)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Scheduled refresh callback failed")
            if on_error is not None:
                on_error(exc)

    async def _run_timer(
        self,
        interval_seconds: float,
        stop: asyncio.Event,
        refresh_on_start: bool,
        on_refresh: Callable[[RefreshResult], None] | None,
        on_error: Callable[[Exception], None] | None,
    ) -> None:
        # Only the wait between refreshes is interruptible.
        if refresh_on_start:
            await self._tick(on_refresh, on_error)
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), interval_seconds)
            except asyncio.TimeoutError:
                await self._tick(on_refresh, on_error)

    def stop_scheduler(self) -> bool:
        """Stop the timer; a refresh already underway runs to completion."""
        timer = self._timer
        if timer is None or timer.done():
            return False
        if self._stop is not None:
            self._stop.set()
        self._draining.add(timer)
        timer.add_done_callback(self._draining.discard)
        self._timer = None
        self._stop = None
        self._interval_minutes = None
        LOGGER.info("Scheduler stopped")
        return True

    async def shutdown(self) -> None:
        """Stop the timer and wait for any scheduled refresh still in flight."""
        self.stop_scheduler()
        if self._draining:
            await asyncio.gather(*self._draining, return_exceptions=True)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Refresh the skills registry.")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single refresh and exit instead of refreshing on a timer.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Scrape, reconcile and validate without saving (implies --once).",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Minutes between refreshes when running on a timer (default: REFRESH_INTERVAL).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: LOG_LEVEL or INFO).",
    )
    return parser.parse_args()


def _print_result(result: RefreshResult) -> None:
    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))


async def run() -> int:
    from skills_api.core.config import LOG_FORMAT, load_settings
    from skills_api.core.services import build_services

    args = parse_args()
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, args.log_level or settings.log_level, logging.INFO),
        format=LOG_FORMAT,
    )

    services = build_services(settings)
    await services.registry.initialize()
    try:
        if args.once or args.dry_run:
            result = await services.orchestrator.refresh(dry_run=args.dry_run)
            _print_result(result)
            return 0 if result.success else 1

        services.orchestrator.start_scheduler(
            interval_minutes=args.interval or settings.refresh_interval_minutes,
            refresh_on_start=True,
            on_refresh=_print_result,
        )
        await asyncio.Event().wait()
        return 0
    finally:
        await services.aclose()


def main() -> int:
    try:
        return asyncio.run(run())
    except KeyboardInterrupt:
        LOGGER.info("Interrupted, shutting down")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
