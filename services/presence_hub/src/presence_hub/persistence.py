"""Persistence gateway: loads hub state at startup and mirrors snapshots to storage."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Sequence, Tuple, TypeVar

from pydantic import TypeAdapter

from .exceptions import StorageError
from .models import ChatMessage
from .storage import KNOWN_USERS, MESSAGES, StorageBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MESSAGES_ADAPTER = TypeAdapter(List[ChatMessage])
_KNOWN_USERS_ADAPTER = TypeAdapter(List[str])


class SnapshotWriter:
    """Non-blocking write queue for one storage record.

    `submit` only records the newest snapshot and wakes the worker, so callers
    never wait on I/O. The worker writes one snapshot at a time; snapshots
    submitted while a write is in flight collapse into a single follow-up
    write of the most recent one. The record therefore always ends up holding
    the last submitted snapshot, and intermediate ones may never be written.
    Failed writes are logged and dropped; the next submit retries with fresh
    data.
    """

    def __init__(self, name: str, backend: StorageBackend) -> None:
        self._name = name
        self._backend = backend
        self._pending: str | None = None
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._task: asyncio.Task[None] | None = None
        self.submitted = 0
        self.writes = 0
        self.failures = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"snapshot-writer-{self._name}")

    def submit(self, payload: str) -> None:
        self._pending = payload
        self.submitted += 1
        self._idle.clear()
        self._wakeup.set()

    async def flush(self) -> None:
        """Wait until every submitted snapshot has been written or has failed."""

        if self.running:
            await self._idle.wait()
            return
        # no worker (not started or already stopped): drain inline
        payload, self._pending = self._pending, None
        if payload is not None:
            await self._write(payload)
        self._idle.set()

    async def stop(self) -> None:
        await self.flush()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def stats(self) -> dict[str, int]:
        return {"submitted": self.submitted, "writes": self.writes, "failures": self.failures}

    async def _run(self) -> None:
        try:
            while True:
                await self._wakeup.wait()
                self._wakeup.clear()
                payload, self._pending = self._pending, None
                if payload is not None:
                    await self._write(payload)
                if self._pending is None:
                    self._idle.set()
        except asyncio.CancelledError:
            logger.debug("Snapshot writer %s cancelled", self._name)
            raise

    async def _write(self, payload: str) -> None:
        try:
            await self._backend.write(self._name, payload)
            self.writes += 1
        except Exception:  # pylint: disable=broad-except
            self.failures += 1
            logger.warning("Failed to persist %s", self._name, exc_info=True)


class PersistenceGateway:
    """Reads and writes the message log and known-users records."""

    def __init__(self, backend: StorageBackend) -> None:
        self._backend = backend
        self._messages = SnapshotWriter(MESSAGES, backend)
        self._known_users = SnapshotWriter(KNOWN_USERS, backend)

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    async def load_all(self) -> Tuple[List[ChatMessage], List[str]]:
        """Load both records; a missing or broken record loads as empty."""

        messages = await self._load(MESSAGES, _MESSAGES_ADAPTER.validate_json)
        known_users = await self._load(KNOWN_USERS, _KNOWN_USERS_ADAPTER.validate_json)
        logger.info(
            "Loaded persisted data: %d messages, %d known users from %s",
            len(messages),
            len(known_users),
            self._backend.describe(),
        )
        return messages, known_users

    def save_messages(self, snapshot: Sequence[ChatMessage]) -> None:
        payload = _MESSAGES_ADAPTER.dump_json(list(snapshot), indent=2).decode("utf-8")
        self._messages.submit(payload)

    def save_known_users(self, snapshot: Sequence[str]) -> None:
        payload = _KNOWN_USERS_ADAPTER.dump_json(list(snapshot), indent=2).decode("utf-8")
        self._known_users.submit(payload)

    def start(self) -> None:
        self._messages.start()
        self._known_users.start()

    async def flush(self) -> None:
        await self._messages.flush()
        await self._known_users.flush()

    async def stop(self) -> None:
        await self._messages.stop()
        await self._known_users.stop()
        await self._backend.close()

    def stats(self) -> dict[str, Any]:
        return {
            "backend": self._backend.describe(),
            MESSAGES: self._messages.stats(),
            KNOWN_USERS: self._known_users.stats(),
        }

    async def _load(self, name: str, decode: Callable[[str], List[T]]) -> List[T]:
        try:
            raw = await self._backend.read(name)
        except StorageError:
            logger.warning("Could not read persisted %s, starting empty", name, exc_info=True)
            return []
        if raw is None:
            logger.info("No persisted %s found, starting empty", name)
            return []
        try:
            return decode(raw)
        except ValueError as exc:
            logger.error("Malformed persisted %s, starting empty: %s", name, exc)
            return []
