"""Subscription groups and best-effort fan-out over live connections."""

import asyncio
import json
import logging
import uuid
from typing import Any, Protocol

from fastapi import WebSocket

from chatdesk.presence import Party

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """A live, bidirectional client connection."""

    id: str
    role: Party

    async def send(self, event: str, data: dict[str, Any]) -> None:
        """Deliver one event frame. May raise if the peer has gone away."""
        ...


class WebSocketConnection:
    """Connection backed by a FastAPI WebSocket.

    Sends are serialized per socket so frames from concurrent broadcasts
    never interleave.
    """

    def __init__(self, websocket: WebSocket, role: Party) -> None:
        self.id = uuid.uuid4().hex
        self.role = role
        self._websocket = websocket
        self._send_lock = asyncio.Lock()

    async def send(self, event: str, data: dict[str, Any]) -> None:
        frame = json.dumps({"event": event, "data": data}, default=str)
        async with self._send_lock:
            await self._websocket.send_text(frame)

    def __repr__(self) -> str:
        return f"WebSocketConnection(id={self.id!r}, role={self.role.value!r})"


class ChannelManager:
    """Registry of per-session groups and the global operator group.

    A session group holds the visitor's connection and any operators viewing
    that session. The operator group holds every connected operator.
    Membership is keyed by connection id, so joining twice is a no-op.

    Delivery is at most once per connection per broadcast. A failed send is
    logged and skipped; there is no queueing for absent subscribers.
    """

    def __init__(self) -> None:
        self._groups: dict[str, dict[str, Connection]] = {}
        self._operators: dict[str, Connection] = {}
        self._memberships: dict[str, set[str]] = {}

    def join(self, connection: Connection, session_id: str) -> bool:
        """Subscribe a connection to a session group.

        Returns:
            True if the connection was added, False if already a member.
        """
        group = self._groups.setdefault(session_id, {})
        if connection.id in group:
            return False
        group[connection.id] = connection
        self._memberships.setdefault(connection.id, set()).add(session_id)
        logger.debug(
            "Joined session group (session_id=%s, connection=%s, role=%s)",
            session_id,
            connection.id,
            connection.role.value,
        )
        return True

    def leave(self, connection: Connection, session_id: str) -> bool:
        """Unsubscribe a connection from a session group.

        Returns:
            True if the connection was a member.
        """
        group = self._groups.get(session_id)
        if group is None or group.pop(connection.id, None) is None:
            return False
        if not group:
            del self._groups[session_id]
        sessions = self._memberships.get(connection.id)
        if sessions is not None:
            sessions.discard(session_id)
            if not sessions:
                del self._memberships[connection.id]
        return True

    def add_operator(self, connection: Connection) -> None:
        """Add a connection to the global operator group."""
        self._operators[connection.id] = connection

    def disconnect(self, connection: Connection) -> int:
        """Remove a connection from every group.

        Returns:
            Number of session groups the connection left.
        """
        self._operators.pop(connection.id, None)
        left = 0
        for session_id in list(self._memberships.get(connection.id, ())):
            if self.leave(connection, session_id):
                left += 1
        return left

    def members(self, session_id: str, role: Party | None = None) -> list[Connection]:
        """List live connections in a session group, optionally by role."""
        group = self._groups.get(session_id, {})
        return [c for c in group.values() if role is None or c.role is role]

    def operators(self) -> list[Connection]:
        """List connections in the global operator group."""
        return list(self._operators.values())

    def sessions_of(self, connection: Connection) -> set[str]:
        """Session groups a connection belongs to."""
        return set(self._memberships.get(connection.id, ()))

    async def broadcast(
        self,
        session_id: str,
        event: str,
        data: dict[str, Any],
        role: Party | None = None,
    ) -> int:
        """Deliver an event to a session group.

        Args:
            session_id: Target session group.
            event: Event name.
            data: Event payload.
            role: If given, only members with this role receive it.

        Returns:
            Number of connections the event was delivered to.
        """
        return await self._deliver(self.members(session_id, role), event, data)

    async def broadcast_global(self, event: str, data: dict[str, Any]) -> int:
        """Deliver an event to every connected operator."""
        return await self._deliver(self.operators(), event, data)

    async def _deliver(self, targets: list[Connection], event: str, data: dict[str, Any]) -> int:
        delivered = 0
        for connection in targets:
            try:
                await connection.send(event, data)
            except Exception as e:
                logger.warning(
                    "Dropping %s for connection %s: %s",
                    event,
                    connection.id,
                    e,
                )
                continue
            delivered += 1
        return delivered
