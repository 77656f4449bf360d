"""In-process state owned by the hub: message log, known users, live bindings."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .exceptions import DuplicateMessageError
from .models import SYSTEM_USERNAME, ChatMessage


class MessageStore:
    """Ordered log of chat messages, insertion order equals arrival order."""

    def __init__(self, initial: Iterable[ChatMessage] | None = None) -> None:
        self._messages: List[ChatMessage] = []
        self._ids: set[str] = set()
        for message in initial or ():
            if message.id in self._ids:
                # persisted logs written by older builds may repeat ids; keep the first
                continue
            self.append(message)

    def __len__(self) -> int:
        return len(self._messages)

    def append(self, message: ChatMessage) -> None:
        if message.id in self._ids:
            raise DuplicateMessageError(f"Message {message.id} already stored")
        self._messages.append(message)
        self._ids.add(message.id)

    def tail(self) -> Optional[ChatMessage]:
        return self._messages[-1] if self._messages else None

    def remove_by_author(self, username: str) -> int:
        """Drop every message written by `username`; return how many were dropped."""

        return self._retain(lambda m: m.username != username)

    def remove_by_author_and_system_references(self, username: str) -> int:
        """Drop the author's messages plus system messages whose text contains `username`.

        The text match is a plain substring test, so a system message about
        `jon` also goes when `jo` is purged.
        """

        def keep(message: ChatMessage) -> bool:
            if message.username == username:
                return False
            if message.username == SYSTEM_USERNAME and username in message.text:
                return False
            return True

        return self._retain(keep)

    def snapshot(self) -> List[ChatMessage]:
        return list(self._messages)

    def _retain(self, keep) -> int:  # type: ignore[no-untyped-def]
        before = len(self._messages)
        self._messages = [m for m in self._messages if keep(m)]
        self._ids = {m.id for m in self._messages}
        return before - len(self._messages)


class KnownUsers:
    """Set of usernames that joined at least once and were not account-deleted.

    Membership is set-like; snapshots keep first-join order.
    """

    def __init__(self, initial: Iterable[str] | None = None) -> None:
        self._users: Dict[str, None] = dict.fromkeys(initial or ())

    def __contains__(self, username: object) -> bool:
        return username in self._users

    def __len__(self) -> int:
        return len(self._users)

    def add(self, username: str) -> bool:
        if username in self._users:
            return False
        self._users[username] = None
        return True

    def remove(self, username: str) -> bool:
        if username not in self._users:
            return False
        del self._users[username]
        return True

    def snapshot(self) -> List[str]:
        return list(self._users)


class ConnectionRegistry:
    """Maps live connection ids to the username bound on that connection.

    One username per connection; a username may be bound on several
    connections at once (multi-device).
    """

    def __init__(self) -> None:
        self._bindings: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._bindings)

    def bind(self, connection_id: str, username: str) -> None:
        # rebinding keeps the connection's original position in the online list
        self._bindings[connection_id] = username

    def username_for(self, connection_id: str) -> Optional[str]:
        return self._bindings.get(connection_id)

    def unbind_connection(self, connection_id: str) -> Optional[str]:
        return self._bindings.pop(connection_id, None)

    def unbind_username(self, username: str) -> List[str]:
        unbound = [cid for cid, bound in self._bindings.items() if bound == username]
        for cid in unbound:
            del self._bindings[cid]
        return unbound

    def online_usernames(self) -> List[str]:
        """Usernames in bind order, one entry per live session."""

        return list(self._bindings.values())
