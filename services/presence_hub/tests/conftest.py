from __future__ import annotations

import itertools
from typing import Any, Callable, Iterator

import pytest

from presence_hub.broadcast import BroadcastGroup, Connection
from presence_hub.config import get_settings
from presence_hub.exceptions import StorageError
from presence_hub.hub import ChatHub
from presence_hub.persistence import PersistenceGateway
from presence_hub.registries import ConnectionRegistry, KnownUsers, MessageStore


class RecordingConnection(Connection):
    """Connection that keeps every frame it was asked to send."""

    def __init__(self, connection_id: str | None = None) -> None:
        super().__init__(connection_id)
        self.frames: list[dict[str, Any]] = []
        self.close_calls = 0

    def _deliver(self, frame: dict[str, Any]) -> bool:
        self.frames.append(frame)
        return True

    def _close(self) -> None:
        self.close_calls += 1

    def events(self, name: str) -> list[Any]:
        return [frame.get("data") for frame in self.frames if frame["event"] == name]

    def last(self, name: str) -> Any:
        return self.events(name)[-1]

    def clear(self) -> None:
        self.frames.clear()


class MemoryStorage:
    """Dict-backed storage; flip `fail_writes` to simulate an unavailable target."""

    def __init__(self, records: dict[str, str] | None = None) -> None:
        self.records: dict[str, str] = dict(records or {})
        self.write_log: list[tuple[str, str]] = []
        self.fail_writes = False
        self.fail_reads = False
        self.closed = False

    async def read(self, name: str) -> str | None:
        if self.fail_reads:
            raise StorageError(f"read of {name} failed")
        return self.records.get(name)

    async def write(self, name: str, data: str) -> None:
        if self.fail_writes:
            raise StorageError(f"write of {name} failed")
        self.records[name] = data
        self.write_log.append((name, data))

    async def close(self) -> None:
        self.closed = True

    def describe(self) -> str:
        return "memory://"


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Iterator[None]:  # type: ignore[no-untyped-def]
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("STORAGE_URL", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def clock() -> Callable[[], int]:
    ticks = itertools.count(1_700_000_000_000)
    return lambda: next(ticks)


@pytest.fixture
def hub(storage: MemoryStorage, clock: Callable[[], int]) -> ChatHub:
    return ChatHub(
        messages=MessageStore(),
        known_users=KnownUsers(),
        connections=ConnectionRegistry(),
        group=BroadcastGroup(),
        gateway=PersistenceGateway(storage),
        clock=clock,
    )


@pytest.fixture
def connect(hub: ChatHub) -> Callable[[], RecordingConnection]:
    def _connect() -> RecordingConnection:
        connection = RecordingConnection()
        hub.connect(connection)
        return connection

    return _connect
