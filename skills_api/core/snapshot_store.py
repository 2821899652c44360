"""Tiered storage for the registry snapshot and the verification cache.

Read priority is object store > local filesystem > bundled dataset. Writes go to
every configured backend, each attempted independently so one failing backend
never blocks the other.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Literal

from skills_api.core.models import (
    SaveResult,
    ScrapedData,
    VerificationCache,
    verification_cache_from_json,
    verification_cache_to_json,
)
from skills_api.core.storage import ObjectStore

LOGGER = logging.getLogger(__name__)

DATA_FILENAME = "skills-data.json"
VERIFICATION_CACHE_FILENAME = "skill-dirs-cache.json"
SKILL_FILES_PREFIX = "skill-files"
BUNDLED_DATA_PATH = Path(__file__).resolve().parents[1] / "data" / "scraped-skills.json"

StorageType = Literal["s3", "filesystem", "bundled"]


def _read_json_file(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def _write_json_file(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


class SnapshotStore:
    """Resolve where the canonical snapshot and verification cache live."""

    def __init__(
        self,
        object_store: ObjectStore | None = None,
        data_dir: Path | None = None,
        bundled_path: Path = BUNDLED_DATA_PATH,
        object_key: str = DATA_FILENAME,
    ) -> None:
        self.object_store = object_store
        self.data_dir = data_dir
        self.bundled_path = bundled_path
        self.object_key = object_key
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def local_data_path(self) -> Path | None:
        if self.data_dir is None:
            return None
        return self.data_dir / DATA_FILENAME

    @property
    def local_cache_path(self) -> Path | None:
        if self.data_dir is None:
            return None
        return self.data_dir / VERIFICATION_CACHE_FILENAME

    def active_storage_type(self) -> StorageType:
        if self.object_store is not None:
            return "s3"
        if self.data_dir is not None:
            return "filesystem"
        return "bundled"

    def info(self) -> dict[str, Any]:
        local_path = self.local_data_path
        return {
            "type": self.active_storage_type(),
            "s3": {
                "configured": self.object_store is not None,
                "location": self.object_store.description if self.object_store else None,
                "key": self.object_key,
            },
            "filesystem": {
                "dataDir": str(self.data_dir) if self.data_dir else None,
                "dataFile": str(local_path) if local_path else "",
                "exists": bool(local_path and local_path.exists()),
            },
            "bundled": {
                "path": str(self.bundled_path),
                "exists": self.bundled_path.exists(),
            },
        }

    # Snapshot reads

    async def _load_from_object_store(self) -> ScrapedData | None:
        if self.object_store is None:
            return None
        try:
            body = await self.object_store.get_text(self.object_key)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Failed to load snapshot from object store: %s", exc)
            return None
        if not body:
            return None
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as exc:
            LOGGER.error("Object store snapshot is not valid JSON: %s", exc)
            return None
        LOGGER.info("Loaded data from %s/%s", self.object_store.description, self.object_key)
        return ScrapedData.from_dict(payload)

    def _load_from_filesystem(self) -> ScrapedData | None:
        local_path = self.local_data_path
        if local_path is None or not local_path.exists():
            return None
        try:
            payload = _read_json_file(local_path)
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.error("Failed to load from %s: %s", local_path, exc)
            return None
        LOGGER.info("Loaded data from %s", local_path)
        return ScrapedData.from_dict(payload)

    def _load_from_bundled(self) -> ScrapedData:
        if self.bundled_path.exists():
            try:
                payload = _read_json_file(self.bundled_path)
            except (OSError, json.JSONDecodeError) as exc:
                LOGGER.error("Failed to load bundled data %s: %s", self.bundled_path, exc)
            else:
                LOGGER.info("Loaded bundled data")
                return ScrapedData.from_dict(payload)
        LOGGER.warning("No data found, returning empty dataset")
        return ScrapedData.empty()

    def _seed_object_store(self, data: ScrapedData, origin: str) -> None:
        LOGGER.info("Object store empty, seeding from %s data", origin)
        task = asyncio.create_task(self._save_to_object_store(data))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def load(self, seed: bool = True) -> ScrapedData:
        """Load the snapshot using object store > filesystem > bundled priority."""
        from_remote = await self._load_from_object_store()
        if from_remote is not None:
            return from_remote

        from_fs = self._load_from_filesystem()
        if from_fs is not None:
            if seed and self.object_store is not None:
                self._seed_object_store(from_fs, "filesystem")
            return from_fs

        bundled = self._load_from_bundled()
        if seed and self.object_store is not None and bundled.skills:
            self._seed_object_store(bundled, "bundled")
        return bundled

    def load_local(self) -> ScrapedData:
        """Synchronous load that only consults the filesystem and bundled data."""
        return self._load_from_filesystem() or self._load_from_bundled()

    async def drain(self) -> None:
        """Wait for pending background seeding uploads."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # Snapshot writes

    async def _save_to_object_store(self, data: ScrapedData) -> bool:
        if self.object_store is None:
            return False
        try:
            await self.object_store.put_text(
                self.object_key, json.dumps(data.to_dict(), indent=2, ensure_ascii=False)
            )
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Failed to save to object store: %s", exc)
            return False
        LOGGER.info("Saved data to %s/%s", self.object_store.description, self.object_key)
        return True

    def _save_to_path(self, path: Path, data: ScrapedData) -> bool:
        try:
            _write_json_file(path, data.to_dict())
        except OSError as exc:
            LOGGER.error("Failed to save to %s: %s", path, exc)
            return False
        LOGGER.info("Saved data to %s", path)
        return True

    async def save(self, data: ScrapedData) -> SaveResult:
        """Write the snapshot to every configured backend."""
        result = SaveResult()
        if self.object_store is not None:
            result.object_store = await self._save_to_object_store(data)
        # Without a data dir (development) the bundled file is the local copy.
        target = self.local_data_path or self.bundled_path
        result.filesystem = self._save_to_path(target, data)
        return result

    # Verification cache

    async def load_verification_cache(self) -> VerificationCache:
        if self.object_store is not None:
            try:
                body = await self.object_store.get_text(VERIFICATION_CACHE_FILENAME)
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Failed to load verification cache from object store: %s", exc)
            else:
                if body:
                    try:
                        return verification_cache_from_json(json.loads(body))
                    except json.JSONDecodeError as exc:
                        LOGGER.warning("Verification cache in object store is corrupt: %s", exc)

        cache_path = self.local_cache_path
        if cache_path is not None and cache_path.exists():
            try:
                return verification_cache_from_json(_read_json_file(cache_path))
            except (OSError, json.JSONDecodeError) as exc:
                LOGGER.warning("Failed to load verification cache %s: %s", cache_path, exc)
        return {}

    async def save_verification_cache(self, cache: VerificationCache) -> SaveResult:
        payload = verification_cache_to_json(cache)
        result = SaveResult()
        if self.object_store is not None:
            try:
                await self.object_store.put_text(
                    VERIFICATION_CACHE_FILENAME, json.dumps(payload, ensure_ascii=False)
                )
                result.object_store = True
            except Exception as exc:  # noqa: BLE001
                LOGGER.error("Failed to save verification cache to object store: %s", exc)
        cache_path = self.local_cache_path
        if cache_path is not None:
            try:
                _write_json_file(cache_path, payload)
                result.filesystem = True
            except OSError as exc:
                LOGGER.error("Failed to save verification cache %s: %s", cache_path, exc)
        return result

    # GitHub file listings

    @staticmethod
    def skill_files_key(owner: str, repo: str, skill_id: str) -> str:
        return f"{SKILL_FILES_PREFIX}/{owner}/{repo}/{skill_id}.json"

    async def load_skill_files(self, owner: str, repo: str, skill_id: str) -> dict[str, Any] | None:
        if self.object_store is None:
            return None
        try:
            body = await self.object_store.get_text(self.skill_files_key(owner, repo, skill_id))
            return json.loads(body) if body else None
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to read cached files for %s/%s/%s: %s", owner, repo, skill_id, exc)
            return None

    async def save_skill_files(
        self, owner: str, repo: str, skill_id: str, payload: dict[str, Any]
    ) -> bool:
        if self.object_store is None:
            return False
        try:
            await self.object_store.put_text(
                self.skill_files_key(owner, repo, skill_id), json.dumps(payload, ensure_ascii=False)
            )
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Failed to cache files for %s/%s/%s: %s", owner, repo, skill_id, exc)
            return False
        return True
