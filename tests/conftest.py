from __future__ import annotations

import pytest


class MemoryObjectStore:
    """In-memory stand-in for the Supabase bucket."""

    description = "memory://skills"

    def __init__(self, fail_reads: bool = False, fail_writes: bool = False) -> None:
        self.objects: dict[str, str] = {}
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes
        self.puts: list[str] = []

    async def get_text(self, object_key: str) -> str | None:
        if self.fail_reads:
            raise RuntimeError("object store unavailable")
        return self.objects.get(object_key)

    async def put_text(
        self, object_key: str, text: str, content_type: str = "application/json"
    ) -> None:
        if self.fail_writes:
            raise RuntimeError("object store unavailable")
        self.puts.append(object_key)
        self.objects[object_key] = text


@pytest.fixture
def object_store() -> MemoryObjectStore:
    return MemoryObjectStore()
