"""In-memory session store with atomic message append."""

import copy
import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime

from chatdesk.errors import SessionExistsError, SessionNotFoundError
from chatdesk.session.models import HandoffReason, Message, SenderKind, Session, utcnow

logger = logging.getLogger(__name__)


class SessionStore:
    """Thread-safe in-memory session store.

    Stores sessions keyed by the client-generated session identifier. Every
    read returns a snapshot, so callers never observe a message list that is
    being appended to concurrently.

    Note: This implementation is suitable for single-instance deployments.
    A durable backend only needs to honour the same create/read/append
    contract, raising ``StoreError`` when it is unavailable.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def create_session(self, session_id: str, ip_address: str | None = None) -> Session:
        """Create a new session.

        Raises:
            SessionExistsError: If the identifier is already in use.
        """
        with self._lock:
            if session_id in self._sessions:
                raise SessionExistsError(session_id)
            session = Session(session_id=session_id, ip_address=ip_address)
            self._sessions[session_id] = session
            logger.debug("Creating session (session_id=%s, ip=%s)", session_id, ip_address)
            return self._snapshot(session)

    def get_session(self, session_id: str) -> Session:
        """Get a session snapshot.

        Raises:
            SessionNotFoundError: If no such session exists.
        """
        with self._lock:
            return self._snapshot(self._require(session_id))

    def exists(self, session_id: str) -> bool:
        """Check whether a session exists."""
        with self._lock:
            return session_id in self._sessions

    def list_sessions(self) -> list[Session]:
        """List sessions, most recently active first."""
        with self._lock:
            sessions = [self._snapshot(s) for s in self._sessions.values()]
        sessions.sort(key=lambda s: s.last_active, reverse=True)
        return sessions

    def append_message(
        self,
        session_id: str,
        body: str,
        sender: SenderKind,
        timestamp: datetime | None = None,
    ) -> Message:
        """Append a message to a session atomically.

        The stored timestamp is clamped so it never precedes the previous
        message, keeping the history non-decreasing in time even when clocks
        disagree. Operator messages mark the session handed off.

        Raises:
            SessionNotFoundError: If no such session exists.
        """
        with self._lock:
            session = self._require(session_id)
            when = timestamp or utcnow()
            if session.messages and when < session.messages[-1].timestamp:
                when = session.messages[-1].timestamp

            message = Message(
                id=str(uuid.uuid4()),
                session_id=session_id,
                body=body,
                sender=sender,
                timestamp=when,
                seq=len(session.messages) + 1,
            )
            session.messages.append(message)
            session.touch()

            if sender is SenderKind.OPERATOR and not session.handed_off:
                session.handed_off = True
                session.handoff_reason = HandoffReason.OPERATOR_REPLY

        logger.debug(
            "Appended message (session_id=%s, seq=%d, sender=%s)",
            session_id,
            message.seq,
            sender.value,
        )
        return message

    def is_handed_off(self, session_id: str) -> bool:
        """Check whether a session has been handed off to a human.

        Raises:
            SessionNotFoundError: If no such session exists.
        """
        with self._lock:
            return self._require(session_id).handed_off

    def list_messages(self, session_id: str, limit: int | None = None) -> list[Message]:
        """List a session's messages in arrival order.

        Args:
            session_id: The session identifier.
            limit: If given, only the most recent ``limit`` messages.

        Raises:
            SessionNotFoundError: If no such session exists.
        """
        with self._lock:
            messages = list(self._require(session_id).messages)
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return messages

    def mark_handed_off(self, session_id: str, reason: HandoffReason) -> bool:
        """Set the handed-off flag.

        Returns:
            True if the flag changed, False if the session was already handed off.

        Raises:
            SessionNotFoundError: If no such session exists.
        """
        with self._lock:
            session = self._require(session_id)
            if session.handed_off:
                return False
            session.handed_off = True
            session.handoff_reason = reason
            logger.debug("Session handed off (session_id=%s, reason=%s)", session_id, reason.value)
            return True

    def record_ip_address(self, session_id: str, ip_address: str) -> bool:
        """Fill in the visitor's address if the session has none.

        Returns:
            True if the address was stored.

        Raises:
            SessionNotFoundError: If no such session exists.
        """
        with self._lock:
            session = self._require(session_id)
            if session.ip_address:
                return False
            session.ip_address = ip_address
            return True

    def mark_read(self, session_id: str) -> int:
        """Mark all visitor messages of a session as read.

        Returns:
            Number of messages that changed.

        Raises:
            SessionNotFoundError: If no such session exists.
        """
        with self._lock:
            session = self._require(session_id)
            marked = 0
            for index, message in enumerate(session.messages):
                if message.sender is SenderKind.VISITOR and not message.is_read:
                    session.messages[index] = replace(message, is_read=True)
                    marked += 1
            return marked

    def count(self) -> int:
        """Get the number of sessions."""
        with self._lock:
            return len(self._sessions)

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    @staticmethod
    def _snapshot(session: Session) -> Session:
        snapshot = copy.copy(session)
        snapshot.messages = list(session.messages)
        return snapshot
