from __future__ import annotations

from typing import Protocol


class ManifestFetcher(Protocol):
    async def list_files(self, prefix: str) -> list[str]:
        ...

    async def get_content(self, path: str) -> bytes:
        ...
