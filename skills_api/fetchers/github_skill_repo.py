"""GitHub access for skill verification and SKILL.md content fetching."""

from __future__ import annotations

import asyncio
import base64
import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import quote

import frontmatter
import httpx

LOGGER = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
GITHUB_RAW_BASE = "https://raw.githubusercontent.com"
MANIFEST_FILENAME = "SKILL.md"
USER_AGENT = "skills-api github client"
MAX_FILE_SIZE_BYTES = 1_000_000
MAX_SKILL_FILES = 50
MAX_LISTED_DIRS = 20

SKILL_PATH_PATTERNS = [
    "skills/{skill_id}/SKILL.md",
    "{skill_id}/SKILL.md",
    ".skills/{skill_id}/SKILL.md",
    "agent-skills/{skill_id}/SKILL.md",
]
SKILLS_DIRS = ["skills", ".skills", "agent-skills", ""]
SKILL_ID_PREFIX_RE = re.compile(r"^[a-z]+-")
BINARY_EXTENSIONS = {
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".webp",
    ".ico",
    ".pdf",
    ".zip",
    ".gz",
    ".tar",
    ".mp4",
    ".mp3",
    ".wav",
    ".woff",
    ".woff2",
    ".ttf",
    ".otf",
    ".exe",
    ".dll",
    ".bin",
}


class GitHubFetchError(Exception):
    """Raised for failed GitHub API calls."""


class AsyncRateLimiter:
    """Token-interval rate limiter for async request pacing."""

    def __init__(self, rate_per_second: float) -> None:
        self.rate = max(rate_per_second, 0.001)
        self.interval = 1.0 / self.rate
        self._next_time = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        loop = asyncio.get_running_loop()
        async with self._lock:
            now = loop.time()
            wait_for = self._next_time - now
            if wait_for > 0:
                await asyncio.sleep(wait_for)
                now = loop.time()
            self._next_time = now + self.interval


@dataclass(slots=True)
class SkillContent:
    raw: str
    metadata: dict[str, Any]
    instructions: str


@dataclass(slots=True)
class FetchSkillResult:
    success: bool
    content: SkillContent | None = None
    path: str | None = None
    error: str | None = None


@dataclass(slots=True)
class SkillFile:
    path: str
    size: int
    encoding: str
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "size": self.size,
            "encoding": self.encoding,
            "content": self.content,
        }


@dataclass(slots=True)
class SkillFilesResult:
    success: bool
    files: list[SkillFile] = field(default_factory=list)
    skill_dir: str | None = None
    error: str | None = None


def manifest_dir_name(path: str, repo: str) -> str | None:
    """Directory name a manifest path marks as a skill; root manifests map to the repo."""
    posix = PurePosixPath(path)
    if posix.name.lower() != MANIFEST_FILENAME.lower():
        return None
    parent = posix.parent.name
    return parent or repo


def skill_dirs_from_tree(tree_entries: list[dict[str, Any]], repo: str) -> set[str]:
    """Collect skill directory names from a recursive git tree listing."""
    dirs: set[str] = set()
    for entry in tree_entries:
        if entry.get("type") != "blob":
            continue
        name = manifest_dir_name(str(entry.get("path") or ""), repo)
        if name:
            dirs.add(name)
    return dirs


def locate_skill_md_path(
    tree_paths: set[str],
    skill_id: str,
    patterns: list[str] | None = None,
) -> str | None:
    """Locate SKILL.md path by configured patterns and fallback search."""
    for pattern in patterns or SKILL_PATH_PATTERNS:
        candidate = pattern.format(skill_id=skill_id)
        if candidate in tree_paths:
            return candidate

    slug_lower = skill_id.lower()
    for path in sorted(tree_paths):
        posix = PurePosixPath(path)
        if posix.name.lower() != MANIFEST_FILENAME.lower():
            continue
        if posix.parent.name.lower() == slug_lower:
            return path
    return None


def simplify_skill_id(skill_id: str) -> str:
    """Drop a leading vendor prefix: 'vercel-react-best-practices' -> 'react-best-practices'."""
    return SKILL_ID_PREFIX_RE.sub("", skill_id, count=1)


def parse_skill_markdown(raw: str) -> SkillContent:
    post = frontmatter.loads(raw)
    return SkillContent(raw=raw, metadata=dict(post.metadata), instructions=post.content.strip())


def should_skip_by_size(size: int, max_file_size_bytes: int) -> bool:
    """Return true when file size exceeds configured cap."""
    return size < 0 or size > max_file_size_bytes


def is_probably_binary(path: str, content: bytes) -> bool:
    """Detect binary payload by extension and null-byte check."""
    if PurePosixPath(path.lower()).suffix in BINARY_EXTENSIONS:
        return True
    return b"\x00" in content


class GitHubSkillRepoClient:
    """Thin async GitHub client shared by reconciliation and content routes."""

    def __init__(
        self,
        token: str | None = None,
        timeout_seconds: float = 20.0,
        rate_limit: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.timeout_seconds = timeout_seconds
        self.limiter = AsyncRateLimiter(rate_limit)
        self.transport = transport
        self._http: httpx.AsyncClient | None = None

    async def __aenter__(self) -> GitHubSkillRepoClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                headers=self._headers(),
                transport=self.transport,
                follow_redirects=True,
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _api_get_json(self, path: str, attempts: int = 2) -> Any:
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                await self.limiter.acquire()
                response = await self._client().get(f"{GITHUB_API_BASE}{path}")
            except httpx.HTTPError as exc:
                last_error = exc
            else:
                if response.status_code == 404:
                    raise GitHubFetchError(f"GitHub API not found: {path}")
                if response.status_code in {403, 429}:
                    raise GitHubFetchError(
                        f"Rate limit or forbidden {response.status_code} for {path}"
                    )
                if response.status_code >= 500:
                    last_error = GitHubFetchError(
                        f"GitHub API server error {response.status_code} for {path}"
                    )
                elif response.status_code >= 400:
                    raise GitHubFetchError(
                        f"GitHub API HTTP {response.status_code} for {path}: {response.text[:200]}"
                    )
                else:
                    return response.json()
            if attempt < attempts:
                await asyncio.sleep(min(10.0, 0.8 * (2 ** (attempt - 1))))
        raise GitHubFetchError(f"Failed API request {path}: {last_error}") from last_error

    async def get_default_branch(self, owner: str, repo: str) -> str:
        payload = await self._api_get_json(f"/repos/{owner}/{repo}")
        branch = payload.get("default_branch") if isinstance(payload, dict) else None
        if not isinstance(branch, str) or not branch:
            raise GitHubFetchError(f"Missing default_branch for {owner}/{repo}")
        return branch

    async def get_repo_tree(
        self, owner: str, repo: str, ref: str
    ) -> tuple[list[dict[str, Any]], bool]:
        """Return (tree entries, truncated flag) for a recursive tree listing."""
        payload = await self._api_get_json(
            f"/repos/{owner}/{repo}/git/trees/{quote(ref, safe='')}?recursive=1"
        )
        tree = payload.get("tree") if isinstance(payload, dict) else None
        if not isinstance(tree, list):
            raise GitHubFetchError(f"Invalid tree payload for {owner}/{repo}@{ref}")
        return tree, bool(payload.get("truncated"))

    async def list_skill_dirs(self, owner: str, repo: str) -> set[str] | None:
        """Directory names holding a manifest on the default branch, or None if unverifiable."""
        try:
            branch = await self.get_default_branch(owner, repo)
            tree, truncated = await self.get_repo_tree(owner, repo, branch)
        except (GitHubFetchError, httpx.HTTPError, ValueError) as exc:
            LOGGER.warning("Could not verify %s/%s: %s", owner, repo, exc)
            return None
        if truncated:
            LOGGER.warning("Tree listing for %s/%s is truncated; skipping verification", owner, repo)
            return None
        return skill_dirs_from_tree(tree, repo)

    async def _get_raw(self, owner: str, repo: str, branch: str, path: str) -> str | None:
        url = f"{GITHUB_RAW_BASE}/{owner}/{repo}/{branch}/{path}"
        try:
            await self.limiter.acquire()
            response = await self._client().get(url)
        except httpx.HTTPError as exc:
            LOGGER.debug("Raw fetch failed for %s: %s", url, exc)
            return None
        if response.status_code != 200:
            return None
        return response.text

    async def fetch_skill_content(
        self, owner: str, repo: str, skill_id: str, branch: str = "main"
    ) -> FetchSkillResult:
        """Fetch and parse a skill's SKILL.md from the known layout patterns."""
        candidates = [skill_id]
        simplified = simplify_skill_id(skill_id)
        if simplified != skill_id:
            candidates.append(simplified)

        for candidate in candidates:
            for pattern in SKILL_PATH_PATTERNS:
                path = pattern.format(skill_id=candidate)
                raw = await self._get_raw(owner, repo, branch, path)
                if raw is None:
                    continue
                return FetchSkillResult(success=True, content=parse_skill_markdown(raw), path=path)

        return FetchSkillResult(
            success=False,
            error=f"Could not find SKILL.md for {skill_id} in {owner}/{repo}",
        )

    async def list_skills_in_repo(
        self, owner: str, repo: str, branch: str = "main"
    ) -> dict[str, Any] | None:
        """List directories carrying a SKILL.md under the usual skill folders."""
        for base in SKILLS_DIRS:
            try:
                items = await self._api_get_json(
                    f"/repos/{owner}/{repo}/contents/{base}?ref={quote(branch, safe='')}"
                )
            except GitHubFetchError:
                continue
            if not isinstance(items, list):
                continue
            directories = [
                str(item.get("name"))
                for item in items
                if isinstance(item, dict) and item.get("type") == "dir" and item.get("name")
            ]
            skill_dirs: list[str] = []
            for dir_name in directories[:MAX_LISTED_DIRS]:
                path = f"{base}/{dir_name}/{MANIFEST_FILENAME}" if base else f"{dir_name}/{MANIFEST_FILENAME}"
                if await self._get_raw(owner, repo, branch, path) is not None:
                    skill_dirs.append(dir_name)
            if skill_dirs:
                return {"skills": skill_dirs, "path": base}
        return None

    async def _get_file(self, owner: str, repo: str, path: str, ref: str) -> SkillFile | None:
        payload = await self._api_get_json(
            f"/repos/{owner}/{repo}/contents/{quote(path)}?ref={quote(ref, safe='')}"
        )
        if not isinstance(payload, dict) or payload.get("type") != "file":
            return None
        size = payload.get("size")
        if not isinstance(size, int) or should_skip_by_size(size, MAX_FILE_SIZE_BYTES):
            return None
        encoded = payload.get("content")
        if payload.get("encoding") != "base64" or not isinstance(encoded, str):
            return None
        decoded = base64.b64decode(encoded, validate=False)
        if is_probably_binary(path, decoded):
            return SkillFile(
                path=path,
                size=size,
                encoding="base64",
                content=base64.b64encode(decoded).decode("ascii"),
            )
        try:
            text = decoded.decode("utf-8")
        except UnicodeDecodeError:
            return SkillFile(
                path=path,
                size=size,
                encoding="base64",
                content=base64.b64encode(decoded).decode("ascii"),
            )
        return SkillFile(path=path, size=size, encoding="utf-8", content=text)

    async def fetch_skill_files(
        self, owner: str, repo: str, skill_id: str, branch: str = "main"
    ) -> SkillFilesResult:
        """Download every file in the skill's directory."""
        try:
            tree, _truncated = await self.get_repo_tree(owner, repo, branch)
        except GitHubFetchError as exc:
            return SkillFilesResult(success=False, error=str(exc))

        blobs = {
            str(entry.get("path")): entry
            for entry in tree
            if entry.get("type") == "blob" and entry.get("path")
        }
        skill_md_path = locate_skill_md_path(set(blobs), skill_id) or locate_skill_md_path(
            set(blobs), simplify_skill_id(skill_id)
        )
        if skill_md_path is None:
            return SkillFilesResult(
                success=False,
                error=f"Could not find SKILL.md for {skill_id} in {owner}/{repo}",
            )

        skill_dir = str(PurePosixPath(skill_md_path).parent)
        prefix = "" if skill_dir == "." else f"{skill_dir}/"
        paths = sorted(path for path in blobs if path.startswith(prefix))[:MAX_SKILL_FILES]

        files: list[SkillFile] = []
        for path in paths:
            if should_skip_by_size(int(blobs[path].get("size") or 0), MAX_FILE_SIZE_BYTES):
                continue
            try:
                skill_file = await self._get_file(owner, repo, path, branch)
            except GitHubFetchError as exc:
                LOGGER.warning("Skipping %s in %s/%s: %s", path, owner, repo, exc)
                continue
            if skill_file is not None:
                files.append(skill_file)

        return SkillFilesResult(success=True, files=files, skill_dir=skill_dir)
