"""Broadcast coordinator: drives connection lifecycle events for the chat hub."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .broadcast import BroadcastGroup, Connection, ConnectionState
from .config import Settings
from .exceptions import InvalidFrameError
from .models import (
    SYSTEM_USERNAME,
    AckResult,
    ChatMessage,
    DebugSnapshot,
    InboundFrame,
    InitPayload,
    account_removed_text,
    joined_text,
    left_text,
    messages_deleted_text,
)
from .persistence import PersistenceGateway
from .registries import ConnectionRegistry, KnownUsers, MessageStore
from .schemas import validate_frame
from .storage import StorageBackend, build_storage

logger = logging.getLogger(__name__)


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class ChatHub:
    """Owns the hub state and applies inbound events to it.

    Every handler runs to completion without awaiting, so two events never
    interleave their registry mutations. Persistence is handed to the
    gateway's write queues and never awaited here; outbound frames go through
    non-blocking connection handles.
    """

    def __init__(
        self,
        *,
        messages: MessageStore,
        known_users: KnownUsers,
        connections: ConnectionRegistry,
        group: BroadcastGroup,
        gateway: PersistenceGateway,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._messages = messages
        self._known_users = known_users
        self._connections = connections
        self._group = group
        self._gateway = gateway
        self._clock = clock or _epoch_ms

    @classmethod
    async def create(cls, settings: Settings, *, backend: StorageBackend | None = None) -> "ChatHub":
        """Build a hub whose stores are seeded from persisted storage."""

        gateway = PersistenceGateway(backend or build_storage(settings))
        messages, known_users = await gateway.load_all()
        return cls(
            messages=MessageStore(messages),
            known_users=KnownUsers(known_users),
            connections=ConnectionRegistry(),
            group=BroadcastGroup(),
            gateway=gateway,
        )

    @property
    def messages(self) -> MessageStore:
        return self._messages

    @property
    def known_users(self) -> KnownUsers:
        return self._known_users

    @property
    def connections(self) -> ConnectionRegistry:
        return self._connections

    @property
    def group(self) -> BroadcastGroup:
        return self._group

    @property
    def gateway(self) -> PersistenceGateway:
        return self._gateway

    async def start(self) -> None:
        self._gateway.start()

    async def stop(self) -> None:
        for connection in self._group.members():
            self._connections.unbind_connection(connection.id)
            connection.close()
        self._group = BroadcastGroup()
        await self._gateway.stop()
        logger.info("Hub stopped with %d messages, %d known users", len(self._messages), len(self._known_users))

    # lifecycle events

    def connect(self, connection: Connection) -> None:
        self._group.add(connection)
        logger.debug("Connection %s registered", connection.id)

    def join(self, connection: Connection, username: str) -> None:
        self._connections.bind(connection.id, username)
        connection.state = ConnectionState.IDENTIFIED
        logger.info("%s joined (%s)", username, connection.id)

        if self._known_users.add(username):
            self._gateway.save_known_users(self._known_users.snapshot())

        init = InitPayload(
            messages=self._messages.snapshot(),
            online=self._connections.online_usernames(),
            known_users=self._known_users.snapshot(),
        )
        connection.send("init", init.model_dump(by_alias=True, mode="json"))
        self._broadcast_online()
        self._post(SYSTEM_USERNAME, joined_text(username))

    def chat_message(self, connection: Connection, username: str, text: str) -> ChatMessage:
        logger.debug("Message from %s on %s", username, connection.id)
        return self._post(username, text)

    def leave(self, connection: Connection, username: str) -> AckResult:
        return self._acked("leave", connection, username, self._leave)

    def delete_user_messages(self, connection: Connection, username: str) -> AckResult:
        return self._acked("delete_user_messages", connection, username, self._delete_user_messages)

    def delete_user_account(self, connection: Connection, username: str) -> AckResult:
        return self._acked("delete_user_account", connection, username, self._delete_user_account)

    def disconnect(self, connection: Connection) -> None:
        username = self._connections.unbind_connection(connection.id)
        self._group.discard(connection)
        connection.close()
        logger.info("Connection %s disconnected (%s)", connection.id, username)
        if username is None:
            return
        self._broadcast_online()
        self._post(SYSTEM_USERNAME, left_text(username))

    def dispatch(self, connection: Connection, frame: InboundFrame) -> AckResult | None:
        """Route a client frame to its handler and send the ack when one was requested."""

        try:
            validate_frame(frame)
        except InvalidFrameError as exc:
            logger.warning("Invalid frame from %s: %s", connection.id, exc)
            connection.send("error", {"err": str(exc)}, ack_id=frame.ack_id)
            return None

        if frame.event in {"join", "message"}:
            try:
                if frame.event == "join":
                    self.join(connection, frame.data)
                else:
                    self.chat_message(connection, frame.data["username"], frame.data["text"])
            except Exception as exc:  # pylint: disable=broad-except
                logger.exception("Error in %s", frame.event)
                connection.send("error", {"err": str(exc)}, ack_id=frame.ack_id)
            return None

        handlers = {
            "leave": self.leave,
            "delete_user_messages": self.delete_user_messages,
            "delete_user_account": self.delete_user_account,
        }
        result = handlers[frame.event](connection, frame.data)
        if frame.ack_id is not None:
            connection.send("ack", result.to_wire(), ack_id=frame.ack_id)
        return result

    def snapshot(self) -> DebugSnapshot:
        return DebugSnapshot(
            messages=self._messages.snapshot(),
            known_users=self._known_users.snapshot(),
            online=self._connections.online_usernames(),
        )

    # acknowledged operations; mutations applied before a failure are kept

    def _acked(
        self,
        event: str,
        connection: Connection,
        username: str,
        handler: Callable[[Connection, str], AckResult],
    ) -> AckResult:
        logger.info("Received %s from %s (%s)", event, username, connection.id)
        try:
            return handler(connection, username)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Error in %s", event)
            return AckResult.failure(exc)

    def _leave(self, connection: Connection, username: str) -> AckResult:
        self._release(connection)
        self._broadcast_online()
        self._post(SYSTEM_USERNAME, left_text(username))
        return AckResult.success()

    def _delete_user_messages(self, connection: Connection, username: str) -> AckResult:
        removed = self._messages.remove_by_author(username)
        self._release(connection)
        self._broadcast_online()
        self._gateway.save_messages(self._messages.snapshot())
        self._broadcast_messages()
        self._post(SYSTEM_USERNAME, messages_deleted_text(username, removed))
        return AckResult.success(removed_count=removed)

    def _delete_user_account(self, connection: Connection, username: str) -> AckResult:
        removed = self._messages.remove_by_author_and_system_references(username)
        self._known_users.remove(username)
        self._gateway.save_messages(self._messages.snapshot())
        self._gateway.save_known_users(self._known_users.snapshot())

        for connection_id in self._connections.unbind_username(username):
            target = self._group.get(connection_id)
            if target is None:
                continue
            self._group.discard(target)
            target.close()
            logger.info("Force-disconnected %s (%s)", username, connection_id)

        self._broadcast_online()
        self._broadcast_messages()
        self._post(SYSTEM_USERNAME, account_removed_text(username))
        return AckResult.success(removed_count=removed)

    # helpers

    def _release(self, connection: Connection) -> None:
        self._connections.unbind_connection(connection.id)
        if not connection.closed:
            connection.state = ConnectionState.UNIDENTIFIED

    def _post(self, username: str, text: str) -> ChatMessage:
        message = ChatMessage.create(username, text, self._next_ts())
        self._messages.append(message)
        self._gateway.save_messages(self._messages.snapshot())
        self._group.emit("message", message.model_dump())
        return message

    def _next_ts(self) -> int:
        now = self._clock()
        tail = self._messages.tail()
        if tail is not None and tail.ts > now:
            return tail.ts
        return now

    def _broadcast_online(self) -> None:
        self._group.emit("online", self._connections.online_usernames())

    def _broadcast_messages(self) -> None:
        self._group.emit("messages", [m.model_dump() for m in self._messages.snapshot()])
