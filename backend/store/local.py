"""
Local file backend — one pretty-printed `<key>.json` per document.

Used for development and tests. The version token is a SHA-256 of the file
bytes; compare-and-write happens under a per-key lock so two coroutines in this
process cannot interleave between the version check and the write.
"""

import asyncio
import hashlib
import json
from pathlib import Path
from typing import Any

import structlog

from store.base import ABSENT, DurableStore, StoreReadError, StoreWriteError, StoredDocument, VersionConflictError

logger = structlog.get_logger()


def _version_of(raw: bytes) -> str:
    return hashlib.sha256(raw).hexdigest()[:16]


class LocalFileStore(DurableStore):
    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def backend_name(self) -> str:
        return "local"

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def _read_raw(self, key: str) -> bytes | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_bytes()

    async def load(self, key: str) -> StoredDocument | None:
        try:
            raw = await asyncio.to_thread(self._read_raw, key)
        except OSError as exc:
            raise StoreReadError(f"Failed to read {key}: {exc}") from exc
        if raw is None:
            return None
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StoreReadError(f"Document {key} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreReadError(f"Document {key} is not a JSON object")
        return StoredDocument(data=data, version=_version_of(raw))

    def _write_raw(self, key: str, raw: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_bytes(raw)
        tmp.replace(path)

    async def save(self, key: str, data: dict[str, Any], expected_version: str | None = None) -> str:
        raw = json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")
        async with self._lock(key):
            if expected_version is not None:
                try:
                    current = await asyncio.to_thread(self._read_raw, key)
                except OSError as exc:
                    raise StoreWriteError(f"Failed to check {key} before write: {exc}") from exc
                actual = ABSENT if current is None else _version_of(current)
                if actual != expected_version:
                    raise VersionConflictError(key, expected_version, actual)
            try:
                await asyncio.to_thread(self._write_raw, key, raw)
            except OSError as exc:
                raise StoreWriteError(f"Failed to write {key}: {exc}") from exc

        logger.debug("store.saved", backend="local", key=key, size=len(raw))
        return _version_of(raw)
