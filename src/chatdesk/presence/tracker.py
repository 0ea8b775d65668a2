"""Ephemeral typing and thinking presence with debounced expiry."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_TYPING_TIMEOUT = 2.0  # seconds


class Party(str, Enum):
    """A human participant that can emit typing signals."""

    VISITOR = "visitor"
    OPERATOR = "operator"


@dataclass(frozen=True)
class PresenceState:
    """Snapshot of a session's presence flags."""

    visitor_typing: bool = False
    operator_typing: bool = False
    assistant_thinking: bool = False


class PresenceTracker:
    """In-memory presence flags keyed by session.

    Each typing flag owns one expiry timer. Setting a flag to True cancels
    and restarts its timer, so a party that keeps typing never sees the flag
    drop mid-burst and timers never stack. When a timer fires the flag is
    cleared and ``on_expire(session_id, party)`` is invoked.

    Thinking is a counter of outstanding assistant generations and has no
    expiry; the flag reads True while at least one is outstanding.

    Must be used from within a running event loop.
    """

    def __init__(
        self,
        typing_timeout: float = DEFAULT_TYPING_TIMEOUT,
        on_expire: Callable[[str, Party], None] | None = None,
    ) -> None:
        self._typing_timeout = typing_timeout
        self._on_expire = on_expire
        self._typing: dict[tuple[str, Party], asyncio.TimerHandle] = {}
        self._thinking: dict[str, int] = {}

    @property
    def typing_timeout(self) -> float:
        """Get the typing expiry window in seconds."""
        return self._typing_timeout

    def set_on_expire(self, callback: Callable[[str, Party], None] | None) -> None:
        """Register the callback invoked when a typing flag expires."""
        self._on_expire = callback

    def set_typing(self, session_id: str, party: Party, is_typing: bool) -> bool:
        """Overwrite a typing flag.

        Returns:
            True if the visible flag changed.
        """
        key = (session_id, party)
        handle = self._typing.pop(key, None)
        was_typing = handle is not None
        if handle is not None:
            handle.cancel()

        if is_typing:
            loop = asyncio.get_running_loop()
            self._typing[key] = loop.call_later(self._typing_timeout, self._expire, key)

        return was_typing != is_typing

    def is_typing(self, session_id: str, party: Party) -> bool:
        """Check whether a party is currently typing in a session."""
        return (session_id, party) in self._typing

    def set_thinking(self, session_id: str, is_thinking: bool) -> bool:
        """Record the start or end of one assistant generation.

        Returns:
            True if the visible flag changed.
        """
        before = self._thinking.get(session_id, 0)
        after = before + 1 if is_thinking else max(before - 1, 0)
        if after:
            self._thinking[session_id] = after
        else:
            self._thinking.pop(session_id, None)
        return bool(before) != bool(after)

    def is_thinking(self, session_id: str) -> bool:
        """Check whether the assistant is generating for a session."""
        return session_id in self._thinking

    def snapshot(self, session_id: str) -> PresenceState:
        """Return all presence flags for a session."""
        return PresenceState(
            visitor_typing=self.is_typing(session_id, Party.VISITOR),
            operator_typing=self.is_typing(session_id, Party.OPERATOR),
            assistant_thinking=self.is_thinking(session_id),
        )

    def close(self) -> None:
        """Cancel all pending expiry timers and drop every flag."""
        for handle in self._typing.values():
            handle.cancel()
        self._typing.clear()
        self._thinking.clear()

    def _expire(self, key: tuple[str, Party]) -> None:
        if self._typing.pop(key, None) is None:
            return
        session_id, party = key
        logger.debug("Typing expired (session_id=%s, party=%s)", session_id, party.value)
        if self._on_expire is not None:
            try:
                self._on_expire(session_id, party)
            except Exception:
                logger.exception("Error in typing expiry callback")
