"""Connection handles and the broadcast group used for fan-out."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Iterator, List
from uuid import uuid4

from fastapi import WebSocket

from .models import OutboundFrame

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    UNIDENTIFIED = "unidentified"
    IDENTIFIED = "identified"
    CLOSED = "closed"


class Connection:
    """One live bidirectional channel to a client.

    `send` and `close` never block: subclasses hand frames to their transport
    without awaiting it, so hub handlers stay synchronous.
    """

    def __init__(self, connection_id: str | None = None) -> None:
        self.id = connection_id or uuid4().hex
        self.state = ConnectionState.UNIDENTIFIED

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} state={self.state.value}>"

    @property
    def closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    def send(self, event: str, data: Any = None, *, ack_id: str | int | None = None) -> bool:
        """Queue one frame; returns False when the frame was dropped."""

        if self.closed:
            logger.debug("Dropping %s for closed connection %s", event, self.id)
            return False
        frame = OutboundFrame(event=event, data=data, ack_id=ack_id).to_wire()
        return self._deliver(frame)

    def close(self) -> None:
        if self.closed:
            return
        self.state = ConnectionState.CLOSED
        self._close()

    def _deliver(self, frame: dict[str, Any]) -> bool:
        raise NotImplementedError

    def _close(self) -> None:
        raise NotImplementedError


_CLOSE = object()


class WebSocketConnection(Connection):
    """Connection backed by a FastAPI WebSocket and an outbound queue.

    A writer task drains the queue in order. Frames queued before `close`
    are still written; anything sent afterwards is dropped. A client that lets
    its buffer fill up is disconnected.
    """

    def __init__(self, websocket: WebSocket, *, max_queue: int = 1000) -> None:
        super().__init__()
        self._websocket = websocket
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=max_queue)
        self._abort = False
        self._writer: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain(), name=f"ws-writer-{self.id}")

    async def aclose(self) -> None:
        """Close and stop the writer without flushing; used once the peer is gone."""

        self.close()
        if self._writer:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None

    def _deliver(self, frame: dict[str, Any]) -> bool:
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning("Outbound buffer full for connection %s, disconnecting", self.id)
            self.close()
            return False
        return True

    def _close(self) -> None:
        try:
            self._queue.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            self._abort = True

    async def _drain(self) -> None:
        try:
            while True:
                item = await self._queue.get()
                if item is _CLOSE or self._abort:
                    break
                await self._websocket.send_json(item)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Failed to send payload to client %s: %s", self.id, exc)
            self.state = ConnectionState.CLOSED
        try:
            await self._websocket.close()
        except Exception:  # pylint: disable=broad-except
            logger.debug("Ignored error while closing websocket", exc_info=True)


class BroadcastGroup:
    """Registered connection handles that receive fan-out events."""

    def __init__(self) -> None:
        self._members: Dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._members.values()))

    def add(self, connection: Connection) -> None:
        self._members[connection.id] = connection

    def discard(self, connection: Connection) -> None:
        self._members.pop(connection.id, None)

    def get(self, connection_id: str) -> Connection | None:
        return self._members.get(connection_id)

    def members(self) -> List[Connection]:
        return list(self._members.values())

    def emit(self, event: str, data: Any = None) -> int:
        """Send to every member registered right now; returns deliveries."""

        deliveries = 0
        for connection in self.members():
            if connection.send(event, data):
                deliveries += 1
        return deliveries
