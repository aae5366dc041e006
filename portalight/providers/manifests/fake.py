from __future__ import annotations

from portalight.core.errors import ManifestFetchError, ManifestNotFoundError


class FakeManifestFetcher:
    def __init__(self, files: dict[str, bytes | str] | None = None) -> None:
        # In-memory repository keeps orchestrator tests free of network calls.
        self._files: dict[str, bytes] = {}
        self._failures: dict[str, ManifestFetchError] = {}
        self.fetched: list[str] = []
        for path, content in (files or {}).items():
            self.put(path, content)

    def put(self, path: str, content: bytes | str) -> None:
        self._files[path] = content.encode("utf-8") if isinstance(content, str) else content

    def remove(self, path: str) -> None:
        self._files.pop(path, None)

    def fail(self, path: str, error: ManifestFetchError) -> None:
        self._failures[path] = error

    async def list_files(self, prefix: str) -> list[str]:
        return sorted(path for path in self._files if path.startswith(prefix))

    async def get_content(self, path: str) -> bytes:
        self.fetched.append(path)
        if path in self._failures:
            raise self._failures[path]
        if path not in self._files:
            raise ManifestNotFoundError(f"manifest not found: {path}")
        return self._files[path]
