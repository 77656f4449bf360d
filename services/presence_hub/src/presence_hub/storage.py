"""Storage backends for persisted hub snapshots (JSON files or Redis)."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from .config import Settings
from .exceptions import StorageError

try:  # pragma: no cover - optional in production
    import fakeredis
except Exception:  # pragma: no cover
    fakeredis = None  # type: ignore

logger = logging.getLogger(__name__)

MESSAGES = "messages"
KNOWN_USERS = "knownUsers"

_FAKE_SERVER: Optional[object] = None
if fakeredis:
    _FAKE_SERVER = fakeredis.FakeServer()


class StorageBackend(Protocol):
    """Whole-record storage addressed by logical name."""

    async def read(self, name: str) -> str | None:
        """Return the stored record, or None when it was never written."""

    async def write(self, name: str, data: str) -> None:
        """Replace the stored record with `data`."""

    async def close(self) -> None:
        ...

    def describe(self) -> str:
        ...


class FileStorage:
    """Keeps each record in `<data_dir>/<name>.json`."""

    def __init__(self, data_dir: str | Path) -> None:
        self._data_dir = Path(data_dir).resolve()

    def path_for(self, name: str) -> Path:
        return self._data_dir / f"{name}.json"

    async def read(self, name: str) -> str | None:
        return await asyncio.to_thread(self._read_sync, name)

    async def write(self, name: str, data: str) -> None:
        await asyncio.to_thread(self._write_sync, name, data)

    async def close(self) -> None:
        return None

    def describe(self) -> str:
        return f"file://{self._data_dir}"

    def _read_sync(self, name: str) -> str | None:
        path = self.path_for(name)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as exc:
            raise StorageError(f"{path} is not valid UTF-8", cause=exc) from exc
        except OSError as exc:
            raise StorageError(f"Could not read {path}", cause=exc) from exc

    def _write_sync(self, name: str, data: str) -> None:
        path = self.path_for(name)
        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(data, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            raise StorageError(f"Could not write {path}", cause=exc) from exc


class RedisFactory:
    """Lazy Redis connector with optional fakeredis backend."""

    def __init__(self, url: str) -> None:
        self._url = url
        self._client: redis.Redis | None = None

    async def ensure_connected(self) -> None:
        if self._client is not None:
            return
        self._client = await self._build_client()

    async def get_client(self) -> redis.Redis:
        if self._client is None:
            await self.ensure_connected()
        assert self._client is not None
        return self._client

    async def close(self) -> None:
        if self._client:
            try:
                await self._client.aclose()
            except Exception:
                logger.debug("Failed to close redis client", exc_info=True)
            self._client = None

    async def _build_client(self) -> redis.Redis:
        if self._url.startswith("fakeredis://"):
            if not fakeredis:
                raise RuntimeError("fakeredis is not installed")
            return fakeredis.FakeAsyncRedis(server=_FAKE_SERVER, decode_responses=True)
        return redis.from_url(self._url, decode_responses=True)


class RedisStorage:
    """Keeps each record under the string key `<prefix>:<name>`."""

    def __init__(self, url: str, key_prefix: str) -> None:
        self._url = url
        self._prefix = key_prefix
        self._factory = RedisFactory(url)

    def key_for(self, name: str) -> str:
        return f"{self._prefix}:{name}"

    async def read(self, name: str) -> str | None:
        try:
            client = await self._factory.get_client()
            return await client.get(self.key_for(name))
        except RedisError as exc:
            raise StorageError(f"Could not read {self.key_for(name)}", cause=exc) from exc

    async def write(self, name: str, data: str) -> None:
        try:
            client = await self._factory.get_client()
            await client.set(self.key_for(name), data)
        except RedisError as exc:
            raise StorageError(f"Could not write {self.key_for(name)}", cause=exc) from exc

    async def close(self) -> None:
        await self._factory.close()

    def describe(self) -> str:
        scheme = self._url.split("://", 1)[0]
        return f"{scheme}://.../{self._prefix}"


def build_storage(settings: Settings) -> StorageBackend:
    """Pick the backend configured by `STORAGE_URL` / `DATA_DIR`."""

    if settings.storage_url:
        return RedisStorage(settings.storage_url, settings.storage_key_prefix)
    return FileStorage(settings.data_dir)
