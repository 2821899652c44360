from __future__ import annotations

import asyncio
import base64

import httpx

from skills_api.fetchers.github_skill_repo import (
    GitHubSkillRepoClient,
    is_probably_binary,
    locate_skill_md_path,
    manifest_dir_name,
    parse_skill_markdown,
    should_skip_by_size,
    simplify_skill_id,
    skill_dirs_from_tree,
)

SKILL_MD = """---
name: my-skill
description: Does things
---

# My Skill

Use it well.
"""


def _client(handler) -> GitHubSkillRepoClient:  # type: ignore[no-untyped-def]
    return GitHubSkillRepoClient(
        token="test-token",
        rate_limit=1000,
        transport=httpx.MockTransport(handler),
    )


def _tree(*paths: str, truncated: bool = False) -> dict:
    return {
        "tree": [{"path": path, "type": "blob", "size": 10} for path in paths],
        "truncated": truncated,
    }


def test_locate_skill_md_path_prefers_configured_pattern() -> None:
    tree_paths = {
        "README.md",
        "skills/my-skill/SKILL.md",
        "my-skill/SKILL.md",
    }
    assert locate_skill_md_path(tree_paths, "my-skill") == "skills/my-skill/SKILL.md"


def test_locate_skill_md_path_fallback_by_parent_folder() -> None:
    tree_paths = {
        "README.md",
        "catalog/my-skill/skill.md",
        "catalog/other/SKILL.md",
    }
    assert locate_skill_md_path(tree_paths, "my-skill") == "catalog/my-skill/skill.md"
    assert locate_skill_md_path(tree_paths, "missing") is None


def test_manifest_dir_name_maps_root_manifest_to_repo() -> None:
    assert manifest_dir_name("skills/pdf/SKILL.md", "skills") == "pdf"
    assert manifest_dir_name("docs/pdf/skill.md", "skills") == "pdf"
    assert manifest_dir_name("SKILL.md", "solo-skill") == "solo-skill"
    assert manifest_dir_name("skills/pdf/README.md", "skills") is None


def test_skill_dirs_from_tree_ignores_non_blobs() -> None:
    entries = [
        {"path": "skills/a/SKILL.md", "type": "blob"},
        {"path": "skills/b", "type": "tree"},
        {"path": "skills/c/Skill.md", "type": "blob"},
        {"path": "README.md", "type": "blob"},
    ]
    assert skill_dirs_from_tree(entries, "repo") == {"a", "c"}


def test_simplify_skill_id_drops_vendor_prefix() -> None:
    assert simplify_skill_id("vercel-react-best-practices") == "react-best-practices"
    assert simplify_skill_id("pdf") == "pdf"


def test_parse_skill_markdown_frontmatter() -> None:
    content = parse_skill_markdown(SKILL_MD)
    assert content.metadata == {"name": "my-skill", "description": "Does things"}
    assert content.instructions.startswith("# My Skill")
    assert content.raw == SKILL_MD


def test_size_and_binary_checks() -> None:
    assert should_skip_by_size(2_000_000, 1_000_000)
    assert not should_skip_by_size(10, 1_000_000)
    assert is_probably_binary("assets/logo.PNG", b"abc")
    assert is_probably_binary("data.txt", b"a\x00b")
    assert not is_probably_binary("notes.md", b"hello")


def test_list_skill_dirs_reads_default_branch_tree() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/repos/acme/tools":
            return httpx.Response(200, json={"default_branch": "trunk"})
        if request.url.path == "/repos/acme/tools/git/trees/trunk":
            assert request.headers["Authorization"] == "Bearer test-token"
            return httpx.Response(200, json=_tree("skills/a/SKILL.md", "b/SKILL.md", "README.md"))
        return httpx.Response(404)

    async def run() -> set[str] | None:
        async with _client(handler) as client:
            return await client.list_skill_dirs("acme", "tools")

    assert asyncio.run(run()) == {"a", "b"}


def test_list_skill_dirs_returns_none_on_failure_or_truncation() -> None:
    def missing(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    def truncated(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/repos/acme/big":
            return httpx.Response(200, json={"default_branch": "main"})
        return httpx.Response(200, json=_tree("skills/a/SKILL.md", truncated=True))

    async def run(handler, repo: str) -> set[str] | None:  # type: ignore[no-untyped-def]
        async with _client(handler) as client:
            return await client.list_skill_dirs("acme", repo)

    assert asyncio.run(run(missing, "gone")) is None
    assert asyncio.run(run(truncated, "big")) is None


def test_list_skill_dirs_empty_tree_is_an_empty_set() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/repos/acme/empty":
            return httpx.Response(200, json={"default_branch": "main"})
        return httpx.Response(200, json=_tree("README.md"))

    async def run() -> set[str] | None:
        async with _client(handler) as client:
            return await client.list_skill_dirs("acme", "empty")

    assert asyncio.run(run()) == set()


def test_fetch_skill_content_falls_back_to_simplified_id() -> None:
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        if request.url.path == "/acme/tools/main/skills/react-best-practices/SKILL.md":
            return httpx.Response(200, text=SKILL_MD)
        return httpx.Response(404)

    async def run():  # type: ignore[no-untyped-def]
        async with _client(handler) as client:
            return await client.fetch_skill_content("acme", "tools", "vercel-react-best-practices")

    result = asyncio.run(run())

    assert result.success
    assert result.path == "skills/react-best-practices/SKILL.md"
    assert result.content is not None
    assert result.content.metadata["name"] == "my-skill"
    assert requested[0] == "/acme/tools/main/skills/vercel-react-best-practices/SKILL.md"


def test_fetch_skill_content_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    async def run():  # type: ignore[no-untyped-def]
        async with _client(handler) as client:
            return await client.fetch_skill_content("acme", "tools", "pdf")

    result = asyncio.run(run())
    assert not result.success
    assert result.error == "Could not find SKILL.md for pdf in acme/tools"


def test_fetch_skill_files_encodes_text_and_binary() -> None:
    logo = b"\x89PNG\x00\x01"

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/repos/acme/tools/git/trees/main":
            return httpx.Response(
                200,
                json=_tree("skills/pdf/SKILL.md", "skills/pdf/logo.png", "skills/other/SKILL.md"),
            )
        if path == "/repos/acme/tools/contents/skills/pdf/SKILL.md":
            return httpx.Response(
                200,
                json={
                    "type": "file",
                    "size": len(SKILL_MD),
                    "encoding": "base64",
                    "content": base64.b64encode(SKILL_MD.encode("utf-8")).decode("ascii"),
                },
            )
        if path == "/repos/acme/tools/contents/skills/pdf/logo.png":
            return httpx.Response(
                200,
                json={
                    "type": "file",
                    "size": len(logo),
                    "encoding": "base64",
                    "content": base64.b64encode(logo).decode("ascii"),
                },
            )
        return httpx.Response(404)

    async def run():  # type: ignore[no-untyped-def]
        async with _client(handler) as client:
            return await client.fetch_skill_files("acme", "tools", "pdf")

    result = asyncio.run(run())

    assert result.success
    assert result.skill_dir == "skills/pdf"
    by_path = {item.path: item for item in result.files}
    assert set(by_path) == {"skills/pdf/SKILL.md", "skills/pdf/logo.png"}
    assert by_path["skills/pdf/SKILL.md"].encoding == "utf-8"
    assert by_path["skills/pdf/SKILL.md"].content == SKILL_MD
    assert by_path["skills/pdf/logo.png"].encoding == "base64"
    assert base64.b64decode(by_path["skills/pdf/logo.png"].content) == logo
