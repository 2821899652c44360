"""Registry data types and their JSON wire shapes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_ts(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _as_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


@dataclass(frozen=True, slots=True)
class RawSkill:
    source: str
    skill_id: str
    name: str
    installs: int = 0

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> RawSkill:
        return cls(
            source=_as_str(payload.get("source")),
            skill_id=_as_str(payload.get("skillId")),
            name=_as_str(payload.get("name")),
            installs=_as_int(payload.get("installs")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "skillId": self.skill_id,
            "name": self.name,
            "installs": self.installs,
        }


@dataclass(frozen=True, slots=True)
class EnrichedSkill:
    source: str
    skill_id: str
    name: str
    installs: int
    owner: str
    repo: str
    github_url: str
    display_name: str

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> EnrichedSkill:
        return cls(
            source=_as_str(payload.get("source")),
            skill_id=_as_str(payload.get("skillId")),
            name=_as_str(payload.get("name")),
            installs=_as_int(payload.get("installs")),
            owner=_as_str(payload.get("owner")),
            repo=_as_str(payload.get("repo")),
            github_url=_as_str(payload.get("githubUrl")),
            display_name=_as_str(payload.get("displayName")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "skillId": self.skill_id,
            "name": self.name,
            "installs": self.installs,
            "owner": self.owner,
            "repo": self.repo,
            "githubUrl": self.github_url,
            "displayName": self.display_name,
        }


@dataclass(frozen=True, slots=True)
class VerificationCacheEntry:
    validated_at: datetime
    dirs: frozenset[str]

    def is_fresh(self, now: datetime, ttl_seconds: float) -> bool:
        return (now - self.validated_at).total_seconds() < ttl_seconds

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> VerificationCacheEntry | None:
        validated_at = parse_ts(payload.get("validatedAt"))
        dirs = payload.get("dirs")
        if validated_at is None or not isinstance(dirs, list):
            return None
        return cls(
            validated_at=validated_at,
            dirs=frozenset(item for item in dirs if isinstance(item, str)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "validatedAt": self.validated_at.isoformat().replace("+00:00", "Z"),
            "dirs": sorted(self.dirs),
        }


VerificationCache = dict[str, VerificationCacheEntry]


def verification_cache_from_json(payload: Any) -> VerificationCache:
    """Decode a persisted cache document, skipping entries that do not parse."""
    cache: VerificationCache = {}
    if not isinstance(payload, dict):
        return cache
    for source, raw_entry in payload.items():
        if not isinstance(source, str) or not isinstance(raw_entry, dict):
            continue
        entry = VerificationCacheEntry.from_dict(raw_entry)
        if entry is not None:
            cache[source] = entry
    return cache


def verification_cache_to_json(cache: VerificationCache) -> dict[str, Any]:
    return {source: cache[source].to_dict() for source in sorted(cache)}


@dataclass(slots=True)
class ValidationStats:
    skill_count: int = 0
    source_count: int = 0
    owner_count: int = 0
    avg_installs: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "skillCount": self.skill_count,
            "sourceCount": self.source_count,
            "ownerCount": self.owner_count,
            "avgInstalls": self.avg_installs,
        }


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    stats: ValidationStats = field(default_factory=ValidationStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "stats": self.stats.to_dict(),
        }


@dataclass(slots=True)
class ScrapedData:
    scraped_at: str
    total_skills: int
    total_sources: int
    total_owners: int
    skills: list[EnrichedSkill] = field(default_factory=list)

    @classmethod
    def empty(cls) -> ScrapedData:
        return cls(scraped_at=utc_now_iso(), total_skills=0, total_sources=0, total_owners=0)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ScrapedData:
        raw_skills = payload.get("skills")
        skills = [
            EnrichedSkill.from_dict(item)
            for item in (raw_skills if isinstance(raw_skills, list) else [])
            if isinstance(item, dict)
        ]
        return cls(
            scraped_at=_as_str(payload.get("scrapedAt")) or utc_now_iso(),
            total_skills=_as_int(payload.get("totalSkills", len(skills))),
            total_sources=_as_int(payload.get("totalSources")),
            total_owners=_as_int(payload.get("totalOwners")),
            skills=skills,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "scrapedAt": self.scraped_at,
            "totalSkills": self.total_skills,
            "totalSources": self.total_sources,
            "totalOwners": self.total_owners,
            "skills": [skill.to_dict() for skill in self.skills],
        }

    def metadata(self) -> dict[str, Any]:
        return {
            "scrapedAt": self.scraped_at,
            "totalSkills": self.total_skills,
            "totalSources": self.total_sources,
            "totalOwners": self.total_owners,
        }


@dataclass(slots=True)
class SaveResult:
    object_store: bool = False
    filesystem: bool = False

    @property
    def any_saved(self) -> bool:
        return self.object_store or self.filesystem

    def to_dict(self) -> dict[str, bool]:
        return {"s3": self.object_store, "filesystem": self.filesystem}


RefreshStatus = Literal["success", "rejected", "failed", "conflict"]


@dataclass(slots=True)
class RefreshResult:
    status: RefreshStatus
    timestamp: str
    skill_count: int | None = None
    source_count: int | None = None
    owner_count: int | None = None
    error: str | None = None
    duration_ms: int | None = None
    storage_type: str | None = None
    saved_to: SaveResult | None = None
    validation: ValidationResult | None = None
    stale_removed: int | None = None
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return self.status == "success"

    @property
    def skipped(self) -> bool:
        return self.status == "rejected"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "status": self.status,
            "timestamp": self.timestamp,
        }
        optional = {
            "skillCount": self.skill_count,
            "sourceCount": self.source_count,
            "ownerCount": self.owner_count,
            "error": self.error,
            "durationMs": self.duration_ms,
            "storageType": self.storage_type,
            "savedTo": self.saved_to.to_dict() if self.saved_to else None,
            "validation": self.validation.to_dict() if self.validation else None,
            "staleRemoved": self.stale_removed,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        if self.skipped:
            payload["skipped"] = True
        if self.dry_run:
            payload["dryRun"] = True
        return payload
